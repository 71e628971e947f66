"""Customer aggregate: resolved or created by email when a payment completes."""

from datetime import UTC, datetime

from protean.fields import Boolean, DateTime, String
from protean.utils.globals import current_domain

from storefront.domain import storefront


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


@storefront.aggregate
class Customer:
    email = String(required=True, max_length=255)
    name = String(max_length=255)
    phone = String(max_length=50)
    marketing_opt_in = Boolean(default=False)
    stripe_customer_id = String(max_length=255)
    created_at = DateTime()
    updated_at = DateTime()


def find_or_create_customer(
    email: str,
    name: str | None = None,
    phone: str | None = None,
    marketing_opt_in: bool = False,
    stripe_customer_id: str | None = None,
) -> Customer:
    """Return the customer with this email, creating one if needed.

    Contact details and a marketing opt-in are filled in on an existing record;
    an opt-in is never withdrawn here.
    """
    repo = current_domain.repository_for(Customer)
    email = normalize_email(email)
    now = datetime.now(UTC)

    matches = repo._dao.query.filter(email=email).all().items
    if matches:
        customer = matches[0]
        changed = False
        for attr, value in (("name", name), ("phone", phone), ("stripe_customer_id", stripe_customer_id)):
            if value and not getattr(customer, attr):
                setattr(customer, attr, value)
                changed = True
        if marketing_opt_in and not customer.marketing_opt_in:
            customer.marketing_opt_in = True
            changed = True
        if changed:
            customer.updated_at = now
            repo.add(customer)
        return customer

    customer = Customer(
        email=email,
        name=name,
        phone=phone,
        marketing_opt_in=bool(marketing_opt_in),
        stripe_customer_id=stripe_customer_id,
        created_at=now,
        updated_at=now,
    )
    repo.add(customer)
    return customer
