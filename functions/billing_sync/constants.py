"""
Shared constants for billing-sync.
"""

# Entity collections held by the record store
CUSTOMER = "customer"
SUBSCRIPTION = "subscription"
PAYMENT = "payment"
CHECKOUT_SESSION = "checkout_session"
INVOICE = "invoice"

ENTITY_TYPES = (CUSTOMER, SUBSCRIPTION, PAYMENT, CHECKOUT_SESSION, INVOICE)

# Reserved metadata keys projected into indexed attributes
METADATA_PROJECTION = {
    "orgId": "org_id",
    "userId": "user_id",
}

# Subscription-derived payment detection: a subscription created locally
# within this window makes a captured payment for the same customer count
# as the subscription's first invoice payment.
RECENT_SUBSCRIPTION_WINDOW_SECONDS = 600

CHECKOUT_MODES = ("payment", "subscription", "setup")

# Status values written by the dispatcher
SUBSCRIPTION_CANCELED = "canceled"
CHECKOUT_COMPLETE = "complete"
INVOICE_OPEN = "open"
INVOICE_PAID = "paid"

# Outbound Stripe calls
DEFAULT_RPC_TIMEOUT = 10.0
DEFAULT_RPC_MAX_RETRIES = 2

# Signed webhook timestamps older than this are rejected
WEBHOOK_TOLERANCE_SECONDS = 300

# Webhook audit records expire after this many days
BILLING_EVENT_TTL_DAYS = 90

# DynamoDB throttling error codes that should trigger retry
THROTTLING_ERRORS = (
    "ProvisionedThroughputExceededException",
    "RequestLimitExceeded",
    "ThrottlingException",
    "InternalServerError",
)
