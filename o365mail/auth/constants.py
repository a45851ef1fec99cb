"""OAuth constants."""

# Public client registered for the o365-mail-cli device code flow.
CLIENT_ID = "5aa6d895-1072-41c4-beb6-d8e3fdf0e7cd"
AUTHORITY = "https://login.microsoftonline.com/common"

# offline_access, openid and profile are added by MSAL itself.
GRAPH_SCOPES = [
    "https://graph.microsoft.com/Mail.ReadWrite",
    "https://graph.microsoft.com/Mail.Send",
    "https://graph.microsoft.com/MailboxSettings.ReadWrite",
]
OUTLOOK_SCOPES = [
    "https://outlook.office.com/IMAP.AccessAsUser.All",
    "https://outlook.office.com/SMTP.Send",
]

DEFAULT_VERIFICATION_URL = "https://microsoft.com/devicelogin"
TOKEN_FILENAME = "token.json"
DIR_PERMISSION = 0o700
FILE_PERMISSION = 0o600

# Extra time allowed past the device code expiry before a waiter gives up.
PENDING_GRACE_SEC = 30
HTTP_TIMEOUT_SEC = 30

USERNAME_CLAIMS = ("preferred_username", "email", "upn", "unique_name")
DENIED_ERRORS = ("authorization_declined", "access_denied")
EXPIRED_ERRORS = ("expired_token", "code_expired", "authorization_pending", "slow_down")
