"""o365-mail-cli - Office 365 mail over IMAP/SMTP or Microsoft Graph."""

__version__ = "1.2.0"
__logo__ = "📬"
