"""Internal constants shared across the library."""

DEFAULT_TABLE = "orders"
USER_AGENT = "deskdrop/1"

# Local storage keys (string-valued).
OWNER_NAME_KEY = "ownerName"
OWNER_PHONE_KEY = "ownerPhone"
OWNERSHIP_RECORDS_KEY = "ownershipRecords"
LAST_ACTIVE_VIEW_KEY = "lastActiveView"

#: Most recent ownership records kept on the device.
OWNERSHIP_CAP = 20

#: Row caps for the two materialized views.
MINE_LIMIT = 50
TRACKING_PAGE_SIZE = 200

#: Remaining minutes at or below which an order counts as imminent.
IMMINENT_MINUTES = 10

DEFAULT_NOTIFICATION_ICON = "/pwa-192x192.png"

#: Notification tags remembered for local dedupe (oldest forgotten first).
SENT_TAG_CAP = 100
