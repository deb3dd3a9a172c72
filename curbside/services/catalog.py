"""Service catalog: priced options and post-payment routing"""

import enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class RoutingClass(str, enum.Enum):
    """What happens to a request once its payment clears"""
    AUTO_SUBMIT = "auto_submit"
    MANUAL_REVIEW = "manual_review"
    OPERATOR_SCHEDULE = "operator_schedule"


class FlowVariant(str, enum.Enum):
    ADDITIONAL_RESOURCE = "additional_resource"
    RENTAL_DELIVERY = "rental_delivery"


class CatalogOption(BaseModel):
    """A selectable option (name + price) within a catalog service"""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    price_cents: int | None = None
    description: str | None = None

    @property
    def requires_payment(self) -> bool:
        return bool(self.price_cents and self.price_cents > 0)


class CatalogService(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    service_id: str
    service_type: str
    name: str
    flow: FlowVariant | None = None
    routing: RoutingClass = RoutingClass.AUTO_SUBMIT
    rental_days: int | None = None
    options: tuple[CatalogOption, ...] = ()

    def get_option(self, option_id: str) -> CatalogOption | None:
        for option in self.options:
            if option.id == option_id:
                return option
        return None


ROLL_CART_REASONS = (
    CatalogOption(
        id="additional-garbage-cart",
        name="Additional Garbage Cart",
        price_cents=2500,
        description="Extra garbage roll cart ($25 cart fee)",
    ),
    CatalogOption(
        id="additional-recycling-cart",
        name="Additional Recycling Cart",
        description="Extra recycling roll cart",
    ),
    CatalogOption(
        id="damaged-cart",
        name="Damaged Cart Replacement",
        description="Cart is cracked, missing a lid or wheels",
    ),
    CatalogOption(
        id="stolen-cart",
        name="Stolen or Missing Cart",
        description="Cart was not returned after collection",
    ),
)

SERVICES: dict[str, CatalogService] = {
    service.service_id: service
    for service in (
        CatalogService(service_id="residential-trash", service_type="residential", name="Trash Pickup"),
        CatalogService(service_id="residential-recycling", service_type="residential", name="Recycling"),
        CatalogService(service_id="residential-yard-waste", service_type="residential", name="Yard Waste"),
        CatalogService(service_id="residential-bulk-pickup", service_type="residential", name="Bulk Item Pickup"),
        CatalogService(
            service_id="residential-roll-off",
            service_type="residential",
            name="Roll-Off Container",
            flow=FlowVariant.RENTAL_DELIVERY,
            routing=RoutingClass.OPERATOR_SCHEDULE,
            rental_days=14,
            options=(
                CatalogOption(id="10-yard", name="10 Yard Container", price_cents=22600),
                CatalogOption(id="20-yard", name="20 Yard Container", price_cents=31800),
                CatalogOption(id="30-yard", name="30 Yard Container", price_cents=41200),
            ),
        ),
        CatalogService(
            service_id="residential-roll-cart",
            service_type="residential",
            name="Roll Cart Service",
            flow=FlowVariant.ADDITIONAL_RESOURCE,
            routing=RoutingClass.MANUAL_REVIEW,
            options=ROLL_CART_REASONS,
        ),
        CatalogService(
            service_id="commercial-dumpster",
            service_type="commercial",
            name="Dumpster Rental",
            routing=RoutingClass.OPERATOR_SCHEDULE,
        ),
        CatalogService(service_id="commercial-scheduled-pickup", service_type="commercial", name="Scheduled Pickup"),
        CatalogService(service_id="commercial-recycling", service_type="commercial", name="Commercial Recycling"),
        CatalogService(service_id="commercial-compactor", service_type="commercial", name="Compactor Service"),
        CatalogService(service_id="commercial-construction", service_type="commercial", name="Construction Waste"),
        CatalogService(
            service_id="commercial-roll-off",
            service_type="commercial",
            name="Commercial Roll-Off",
            flow=FlowVariant.RENTAL_DELIVERY,
            routing=RoutingClass.OPERATOR_SCHEDULE,
            rental_days=14,
            options=(
                CatalogOption(id="20-yard", name="20 Yard Container", price_cents=34500),
                CatalogOption(id="30-yard", name="30 Yard Container", price_cents=44500),
                CatalogOption(id="40-yard", name="40 Yard Container", price_cents=52500),
            ),
        ),
        CatalogService(
            service_id="commercial-roll-cart",
            service_type="commercial",
            name="Commercial Roll Cart",
            flow=FlowVariant.ADDITIONAL_RESOURCE,
            routing=RoutingClass.MANUAL_REVIEW,
            options=ROLL_CART_REASONS,
        ),
    )
}


def get_service(service_id: str) -> CatalogService | None:
    return SERVICES.get(service_id)


def routing_for(service_id: str) -> RoutingClass:
    """Routing class for a service id; roll-cart-like ids always need review"""
    service = SERVICES.get(service_id)
    if service is not None:
        return service.routing
    if "roll-cart" in service_id:
        return RoutingClass.MANUAL_REVIEW
    return RoutingClass.AUTO_SUBMIT


def list_services() -> list[CatalogService]:
    return list(SERVICES.values())
