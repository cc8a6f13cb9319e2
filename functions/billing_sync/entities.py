"""
DynamoDB table layout for the synced Stripe entities.

Each entity lives in its own table keyed by the Stripe identifier (the
natural key). Secondary lookups go through sparse GSIs ranged by the local
creation time, so records without an org/user id are simply not indexed.
"""

from dataclasses import dataclass, field

from .config import SyncConfig
from .constants import CHECKOUT_SESSION, CUSTOMER, INVOICE, PAYMENT, SUBSCRIPTION


@dataclass(frozen=True)
class EntitySpec:
    """Storage description of one entity collection."""

    name: str
    key_attribute: str
    table_setting: str
    # indexed attribute -> GSI name
    indexes: dict = field(default_factory=dict)

    def table_name(self, config: SyncConfig) -> str:
        return getattr(config, self.table_setting)

    def index_for(self, attribute: str) -> str:
        try:
            return self.indexes[attribute]
        except KeyError:
            raise ValueError(f"{self.name} has no index on {attribute}") from None


_CUSTOMER_INDEX = {"stripe_customer_id": "customer-index"}
_LINKAGE_INDEXES = {
    "stripe_customer_id": "customer-index",
    "org_id": "org-index",
    "user_id": "user-index",
}

ENTITIES: dict[str, EntitySpec] = {
    CUSTOMER: EntitySpec(
        name=CUSTOMER,
        key_attribute="stripe_customer_id",
        table_setting="customers_table",
    ),
    SUBSCRIPTION: EntitySpec(
        name=SUBSCRIPTION,
        key_attribute="stripe_subscription_id",
        table_setting="subscriptions_table",
        indexes=_LINKAGE_INDEXES,
    ),
    PAYMENT: EntitySpec(
        name=PAYMENT,
        key_attribute="stripe_payment_intent_id",
        table_setting="payments_table",
        indexes=_LINKAGE_INDEXES,
    ),
    CHECKOUT_SESSION: EntitySpec(
        name=CHECKOUT_SESSION,
        key_attribute="stripe_checkout_session_id",
        table_setting="checkout_sessions_table",
        indexes=_CUSTOMER_INDEX,
    ),
    INVOICE: EntitySpec(
        name=INVOICE,
        key_attribute="stripe_invoice_id",
        table_setting="invoices_table",
        indexes=_CUSTOMER_INDEX,
    ),
}


def get_entity(name: str) -> EntitySpec:
    try:
        return ENTITIES[name]
    except KeyError:
        raise ValueError(f"Unknown entity type: {name}") from None


def table_definitions(config: SyncConfig) -> list[dict]:
    """Build create_table kwargs for every billing-sync table.

    Shared by scripts/create_tables.py and the test fixtures so both create
    identical schemas.
    """
    definitions = []
    for spec in ENTITIES.values():
        attributes = {spec.key_attribute: "S"}
        gsis = []
        for attribute, index_name in spec.indexes.items():
            attributes[attribute] = "S"
            attributes["created_at"] = "S"
            gsis.append(
                {
                    "IndexName": index_name,
                    "KeySchema": [
                        {"AttributeName": attribute, "KeyType": "HASH"},
                        {"AttributeName": "created_at", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                }
            )

        definition = {
            "TableName": spec.table_name(config),
            "KeySchema": [{"AttributeName": spec.key_attribute, "KeyType": "HASH"}],
            "AttributeDefinitions": [
                {"AttributeName": name, "AttributeType": kind} for name, kind in attributes.items()
            ],
            "BillingMode": "PAY_PER_REQUEST",
        }
        if gsis:
            definition["GlobalSecondaryIndexes"] = gsis
        definitions.append(definition)

    # Webhook audit trail
    definitions.append(
        {
            "TableName": config.billing_events_table,
            "KeySchema": [
                {"AttributeName": "pk", "KeyType": "HASH"},   # event_id
                {"AttributeName": "sk", "KeyType": "RANGE"},  # event_type
            ],
            "AttributeDefinitions": [
                {"AttributeName": "pk", "AttributeType": "S"},
                {"AttributeName": "sk", "AttributeType": "S"},
            ],
            "BillingMode": "PAY_PER_REQUEST",
        }
    )
    return definitions
