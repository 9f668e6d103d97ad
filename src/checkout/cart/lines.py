"""Cart lines and the customer placing a checkout.

A cart line is one listing (optionally one variant of it) with a quantity and
the unit price captured when checkout began. Lines are immutable values: the
settlement engine never edits them, callers remove a line and start over.
"""

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from decimal import Decimal

from protean.exceptions import ValidationError

from checkout.shared.money import VALID_CURRENCIES, to_money


@dataclass(frozen=True)
class VariantOptions(Mapping):
    """Ordered option-name to option-value pairs describing one variant.

    Option names are matched case-insensitively; the original spelling and the
    order in which the merchant declared the options are preserved.
    """

    pairs: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping | Iterable | None) -> "VariantOptions":
        if data is None:
            return cls()
        if isinstance(data, VariantOptions):
            return data
        items = data.items() if isinstance(data, Mapping) else data

        pairs = []
        seen = set()
        for name, value in items:
            name = str(name).strip()
            if not name:
                raise ValidationError({"options": ["Option names cannot be blank"]})
            if name.lower() in seen:
                raise ValidationError({"options": [f"Option '{name}' is declared more than once"]})
            seen.add(name.lower())
            pairs.append((name, str(value)))
        return cls(tuple(pairs))

    def __getitem__(self, name: str) -> str:
        wanted = name.lower()
        for key, value in self.pairs:
            if key.lower() == wanted:
                return value
        raise KeyError(name)

    def __iter__(self) -> Iterator[str]:
        return (key for key, _ in self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    def option(self, name: str) -> str | None:
        """Typed lookup: the value for ``name`` or None when the variant has no such option."""
        return self.get(name)

    def matches(self, selection: Mapping) -> bool:
        """True when every requested option is present with the same value."""
        return all(
            (value := self.option(name)) is not None and value.lower() == str(wanted).lower()
            for name, wanted in selection.items()
        )

    def to_dict(self) -> dict:
        return dict(self.pairs)


@dataclass(frozen=True)
class CartLine:
    id: str
    listing_id: str
    merchant_id: str
    quantity: int
    unit_price: Decimal
    currency: str = "USD"
    variant_id: str | None = None
    title: str = ""
    sku: str | None = None
    options: VariantOptions = field(default_factory=VariantOptions)

    def __post_init__(self):
        errors = {}
        for name in ("id", "listing_id", "merchant_id"):
            if not str(getattr(self, name) or "").strip():
                errors[name] = ["is required"]

        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity < 1:
            errors["quantity"] = ["Quantity must be a whole number of at least 1"]

        try:
            price = to_money(self.unit_price)
        except ValueError:
            errors["unit_price"] = ["Unit price must be a monetary amount"]
        else:
            if price < 0:
                errors["unit_price"] = ["Unit price cannot be negative"]
            object.__setattr__(self, "unit_price", price)

        currency = str(self.currency or "").upper()
        if currency not in VALID_CURRENCIES:
            errors["currency"] = [f"Unsupported currency: {self.currency}"]
        object.__setattr__(self, "currency", currency)

        if errors:
            raise ValidationError(errors)

        if not isinstance(self.options, VariantOptions):
            object.__setattr__(self, "options", VariantOptions.from_mapping(self.options))

    @property
    def product_id(self) -> str:
        return self.listing_id

    @property
    def stock_key(self) -> str:
        """Inventory is tracked per variant when the line has one, otherwise per listing."""
        return self.variant_id or self.listing_id

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "merchant_id": self.merchant_id,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "currency": self.currency,
            "variant_id": self.variant_id,
            "title": self.title,
            "sku": self.sku,
            "options": [list(pair) for pair in self.options.pairs],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        return cls(
            id=data.get("id"),
            listing_id=data.get("listing_id"),
            merchant_id=data.get("merchant_id"),
            quantity=data.get("quantity"),
            unit_price=data.get("unit_price"),
            currency=data.get("currency") or "USD",
            variant_id=data.get("variant_id"),
            title=data.get("title") or "",
            sku=data.get("sku"),
            options=VariantOptions.from_mapping(data.get("options")),
        )


@dataclass(frozen=True)
class Customer:
    """The buyer. Guests have no id; an email alone does not make a customer known."""

    id: str | None = None
    email: str | None = None

    @property
    def is_guest(self) -> bool:
        return not self.id

    def identifiers(self) -> set[str]:
        """Lower-cased id and email, used to match customer-specific promotions."""
        return {value.strip().lower() for value in (self.id, self.email) if value}

    def to_dict(self) -> dict:
        return {"id": self.id, "email": self.email}

    @classmethod
    def from_dict(cls, data: dict | None) -> "Customer":
        data = data or {}
        return cls(id=data.get("id"), email=data.get("email"))


def validate_cart(lines: list[CartLine]) -> str:
    """Check the cart can be settled as a whole and return its currency."""
    if not lines:
        raise ValidationError({"lines": ["Cart is empty"]})

    line_ids = [line.id for line in lines]
    if len(set(line_ids)) != len(line_ids):
        raise ValidationError({"lines": ["Cart line ids must be unique"]})

    currencies = {line.currency for line in lines}
    if len(currencies) > 1:
        raise ValidationError({"currency": ["All cart lines must share one currency"]})

    return currencies.pop()


def group_by_merchant(lines: list[CartLine]) -> dict[str, list[CartLine]]:
    """Partition lines by merchant, keeping the order merchants first appear in the cart."""
    partitions: dict[str, list[CartLine]] = {}
    for line in lines:
        partitions.setdefault(line.merchant_id, []).append(line)
    return partitions
