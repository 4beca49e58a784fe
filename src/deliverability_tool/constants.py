"""Constants and default values used across the application."""

# DNS Constants
DEFAULT_DNS_TIMEOUT = 5.0  # DNS query timeout in seconds
DEFAULT_DNS_PUBLIC_SERVERS = ("8.8.8.8", "8.8.4.4", "1.1.1.1")  # Google and Cloudflare DNS
DEFAULT_BIMI_SELECTOR = "default"  # No selector discovery, only the well-known name

# HTTP Constants
DEFAULT_HTTP_TIMEOUT = 10.0  # Link check timeout in seconds
DEFAULT_HTTP_MAX_REDIRECTS = 10  # Maximum number of redirects to follow
DEFAULT_USER_AGENT = "EmailDeliverabilityTool/0.1 (Email Deliverability Tester)"
DEFAULT_LINK_CHECK_WORKERS = 8

# RBL Constants
DEFAULT_RBL_TIMEOUT = 5.0  # RBL DNS query timeout in seconds
DEFAULT_RBL_WORKERS = 10
# Tuple so that nobody can append to the shared default
DEFAULT_RBL_SERVERS = (
    "zen.spamhaus.org",  # Spamhaus combined list
    "bl.spamcop.net",  # SpamCop
    "dnsbl.sorbs.net",  # SORBS
    "b.barracudacentral.org",  # Barracuda
    "cbl.abuseat.org",  # Composite Blocking List
    "dnsbl-1.uceprotect.net",  # UCEPROTECT Level 1
)

# SpamAssassin Constants
DEFAULT_SPAM_REQUIRED_SCORE = 5.0  # SpamAssassin default threshold
SIGNIFICANT_SPAM_TEST_SCORE = 1.0  # Report individual tests above this |score|

# rspamd Constants
DEFAULT_RSPAMD_THRESHOLD = 6.0  # "add header" action score
RSPAMD_REJECT_THRESHOLD = 15.0

# Content Constants
URL_SHORTENERS = (
    "bit.ly",
    "tinyurl.com",
    "goo.gl",
    "ow.ly",
    "t.co",
    "buff.ly",
    "is.gd",
    "bl.ink",
    "short.io",
)
UNSUBSCRIBE_KEYWORDS = ("unsubscribe", "opt-out", "optout", "remove", "list-unsubscribe")
MAX_SUBDOMAIN_LABELS = 4  # More dot-separated labels than this looks suspicious
SUSPICIOUS_HOST_CHARS = "[]()<>"

# Header Constants
REQUIRED_HEADERS = ("From", "Date", "Message-ID")
RECOMMENDED_HEADERS = ("Subject", "To", "Reply-To")
OPTIONAL_LIST_HEADERS = ("List-Unsubscribe", "List-Unsubscribe-Post")
NO_REPLY_PATTERNS = ("no-reply", "noreply", "ne-pas-repondre", "nepasrepondre")

# Scoring Constants (points per category, total 10)
MAX_AUTHENTICATION_SCORE = 3.0
MAX_BLACKLIST_SCORE = 2.0
MAX_CONTENT_SCORE = 2.0
MAX_SPAM_SCORE = 2.0
MAX_HEADER_SCORE = 1.0

# Output Display Constants
MAX_SUSPICIOUS_URLS_DISPLAY = 3
MAX_SPAM_TESTS_DISPLAY = 5
