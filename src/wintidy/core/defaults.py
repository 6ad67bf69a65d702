"""
Built-in pattern lists.

Bloatware signatures use winget/Appx style ``Publisher.AppName`` names where
possible so partial publisher matching can pick up renamed variants.
"""

from __future__ import annotations

DEFAULT_BLOATWARE_PATTERNS: tuple[str, ...] = (
    # Inbox Microsoft apps
    "Microsoft.BingNews",
    "Microsoft.BingWeather",
    "Microsoft.BingFinance",
    "Microsoft.BingSports",
    "Microsoft.GetHelp",
    "Microsoft.Getstarted",
    "Microsoft.Microsoft3DViewer",
    "Microsoft.MicrosoftOfficeHub",
    "Microsoft.MicrosoftSolitaireCollection",
    "Microsoft.MixedReality.Portal",
    "Microsoft.People",
    "Microsoft.SkypeApp",
    "Microsoft.WindowsFeedbackHub",
    "Microsoft.WindowsMaps",
    "Microsoft.ZuneMusic",
    "Microsoft.ZuneVideo",
    "Microsoft.YourPhone",
    "Microsoft.Todos",
    "Microsoft.PowerAutomateDesktop",
    "MicrosoftTeams",
    "Clipchamp.Clipchamp",
    # Xbox
    "XboxApp",
    "Microsoft.XboxApp",
    "Microsoft.Xbox.TCUI",
    "Microsoft.XboxGameOverlay",
    "Microsoft.XboxGamingOverlay",
    "Microsoft.XboxIdentityProvider",
    "Microsoft.XboxSpeechToTextOverlay",
    # Sponsored store apps
    "king.com.CandyCrushSaga",
    "king.com.CandyCrushSodaSaga",
    "SpotifyAB.SpotifyMusic",
    "Disney.37853FC22B2CE",
    "Facebook.Facebook",
    "BytedancePte.Ltd.TikTok",
    "AmazonVideo.PrimeVideo",
    # OEM trialware
    "McAfee*",
    "Norton*",
    "WildTangent*",
    "CyberLink*",
    "ExpressVPN*",
    "Booking.com*",
)

DEFAULT_ESSENTIAL_PATTERNS: tuple[str, ...] = (
    "Google.Chrome",
    "Mozilla.Firefox",
    "7zip.7zip",
    "Adobe.Acrobat.Reader.64-bit",
    "Notepad++.Notepad++",
    "VideoLAN.VLC",
    "Microsoft.PowerShell",
    "Microsoft.WindowsTerminal",
)

DEFAULT_CHOCOLATEY_ALIASES: dict[str, str] = {
    "Google.Chrome": "googlechrome",
    "Mozilla.Firefox": "firefox",
    "7zip.7zip": "7zip",
    "Adobe.Acrobat.Reader.64-bit": "adobereader",
    "Notepad++.Notepad++": "notepadplusplus",
    "VideoLAN.VLC": "vlc",
    "Microsoft.PowerShell": "powershell-core",
    "Microsoft.WindowsTerminal": "microsoft-windows-terminal",
}
