"""
domain-sync — System-wide constants.

Field names, notification type tables and other literals shared by the
detector, the policy engine and the dispatcher.
"""

# ---------------------------------------------------------------------------
# Provider sentinel
# ---------------------------------------------------------------------------

# Value returned by the provider when it could not determine a field.
UNKNOWN_SENTINEL: str = "Unknown"

# ---------------------------------------------------------------------------
# Change fields
# ---------------------------------------------------------------------------

FIELD_REGISTRAR = "registrar"
FIELD_SSL_ISSUER = "ssl_issuer"
FIELD_STATUS = "status"
FIELD_DATES_EXPIRY = "dates_expiry"
FIELD_DATES_UPDATED = "dates_updated"

# Provider key → stored column, in processing order.
WHOIS_FIELDS = ("name", "organization", "state", "city", "country", "postal_code")

# Record type → provider key under ``dns``, in processing order.
DNS_RECORD_KEYS = {
    "NS": "nameServers",
    "TXT": "txtRecords",
    "MX": "mxRecords",
}

IP_VERSIONS = ("ipv4", "ipv6")

# Categories, in the order the detector processes them.
CATEGORIES = ("registrar", "whois", "dns", "ip", "ssl", "status", "dates")

# ---------------------------------------------------------------------------
# Notification policy
# ---------------------------------------------------------------------------

# Fields whose whole family shares one preference flag.
NOTIFICATION_TYPE_PREFIXES = ("whois_", "dns_", "ip_")

# Fields that map one-to-one onto a preference flag.
NOTIFICATION_TYPE_EXACT = frozenset({FIELD_REGISTRAR, FIELD_SSL_ISSUER, FIELD_STATUS})

FIELD_HUMAN_NAMES = {
    FIELD_REGISTRAR: "Registrar",
    "whois_name": "WHOIS Name",
    "whois_organization": "WHOIS Organization",
    "whois_state": "WHOIS State",
    "whois_city": "WHOIS City",
    "whois_country": "WHOIS Country",
    "whois_postal_code": "WHOIS Postal Code",
    "dns_ns": "Nameserver",
    "dns_txt": "TXT Record",
    "dns_mx": "MX Record",
    "ip_ipv4": "IPv4 Address",
    "ip_ipv6": "IPv6 Address",
    FIELD_SSL_ISSUER: "SSL Issuer",
    FIELD_DATES_EXPIRY: "Expiry Date",
    FIELD_DATES_UPDATED: "Last Update Date",
    FIELD_STATUS: "Domain Status",
}

# ---------------------------------------------------------------------------
# Expiry reminders
# ---------------------------------------------------------------------------

# Days before expiry on which a reminder is queued (exact calendar-day match).
REMINDER_DAYS = (90, 30, 7, 2)
REMINDER_CHANGE_TYPE = "reminder"

# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

# Stored ``user_info.notification_channels`` key → channel kind.
CHANNEL_CONFIG_KEYS = {
    "email": "email",
    "pushNotification": "push",
    "webHook": "webhook",
    "signal": "signal",
    "telegram": "telegram",
    "slack": "slack",
    "matrix": "matrix",
}
