"""Rule-list validation for command payloads.

Each command has a tuple of FieldRule entries. A rule set is compiled once
into a pydantic model (strict scalars, unknown keys forbidden) and validate()
rewords every pydantic error the way the gateway and frontend already expect.
"""
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Annotated, Any, List, Optional, Sequence, Tuple, Type

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError, create_model
from pydantic_core import PydanticCustomError

from core.config import settings
from services.order_status import STATUS_VALUES

STRING = "string"
NUMBER = "number"
INTEGER = "integer"
OBJECT = "object"
ARRAY = "array"

# Upper bounds of the Numeric(12, 2) and Integer columns
MAX_AMOUNT = 9999999999.99
MAX_QUANTITY = 2147483647

_SCALAR_TYPES = {STRING: str, NUMBER: float, INTEGER: int}

_TYPE_MESSAGES = {
    "string_type": "must be a string",
    "float_type": "must be a number",
    "finite_number": "must be a finite number",
    "int_type": "must be an integer number",
    "int_from_float": "must be an integer number",
    "model_type": "must be an object",
    "model_attributes_type": "must be an object",
    "list_type": "must be an array",
}


@dataclass(frozen=True)
class FieldRule:
    name: str
    kind: str = STRING
    required: bool = True
    minimum: Optional[float] = None
    exclusive_minimum: Optional[float] = None
    maximum: Optional[float] = None
    choices: Optional[Tuple[str, ...]] = None
    fields: Optional[Tuple["FieldRule", ...]] = None
    each: Optional[Tuple["FieldRule", ...]] = None
    min_items: Optional[int] = None


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _one_of(choices: Tuple[str, ...]):
    def check(value: str) -> str:
        if value not in choices:
            raise PydanticCustomError(
                "one_of",
                "must be one of the following values: {choices}",
                {"choices": ", ".join(choices)},
            )
        return value

    return check


def _annotation(rule: FieldRule, model_name: str) -> Any:
    if rule.kind == OBJECT:
        return build_model(rule.fields or (), f"{model_name}_{rule.name}")
    if rule.kind == ARRAY:
        element = build_model(rule.each, f"{model_name}_{rule.name}") if rule.each is not None else Any
        return Annotated[List[element], Field(min_length=rule.min_items)]

    constraints = Field(
        strict=True,
        pattern=r"\S" if rule.kind == STRING and rule.required else None,
        allow_inf_nan=False if rule.kind == NUMBER else None,
        gt=rule.exclusive_minimum,
        ge=rule.minimum,
        le=rule.maximum,
    )
    metadata = [constraints]
    if rule.choices is not None:
        metadata.append(AfterValidator(_one_of(rule.choices)))
    return Annotated[(_SCALAR_TYPES[rule.kind], *metadata)]


@lru_cache(maxsize=None)
def build_model(rules: Tuple[FieldRule, ...], name: str = "Payload") -> Type[BaseModel]:
    """Compile a rule set into a pydantic model."""
    fields = {}
    for rule in rules:
        annotation = _annotation(rule, name)
        if rule.required:
            fields[rule.name] = (annotation, ...)
        else:
            fields[rule.name] = (Optional[annotation], None)
    return create_model(name, __config__=ConfigDict(extra="forbid"), **fields)


def _bound(value: Any) -> Any:
    return int(value) if float(value).is_integer() else value


def _message(error: dict) -> str:
    label = ".".join(str(part) for part in error["loc"])
    kind = error["type"]
    ctx = error.get("ctx") or {}

    if not label:
        return "payload must be an object"
    if kind == "extra_forbidden":
        return f"property {label} should not exist"
    if kind in ("missing", "string_pattern_mismatch") or error.get("input", 0) is None:
        return f"{label} should not be empty"
    if kind in _TYPE_MESSAGES:
        return f"{label} {_TYPE_MESSAGES[kind]}"
    if kind == "greater_than":
        if ctx["gt"] == 0:
            return f"{label} must be a positive number"
        return f"{label} must be greater than {_bound(ctx['gt'])}"
    if kind == "greater_than_equal":
        return f"{label} must not be less than {_bound(ctx['ge'])}"
    if kind == "less_than_equal":
        return f"{label} must not be greater than {_bound(ctx['le'])}"
    if kind == "too_short":
        return f"{label} must contain at least {ctx['min_length']} elements"
    return f"{label} {error['msg']}"


def validate(payload: Any, rules: Sequence[FieldRule]) -> ValidationResult:
    try:
        build_model(tuple(rules)).model_validate(payload)
    except ValidationError as exc:
        return ValidationResult([_message(error) for error in exc.errors()])
    return ValidationResult()


def _pagination_rules() -> Tuple[FieldRule, ...]:
    return (
        FieldRule("page", INTEGER, required=False, minimum=1, maximum=settings.MAX_PAGE),
        FieldRule("limit", INTEGER, required=False, minimum=1, maximum=settings.MAX_PAGE_LIMIT),
    )


ORDER_ITEM_RULES = (
    FieldRule("productId"),
    FieldRule("name"),
    FieldRule("price", NUMBER, exclusive_minimum=0, maximum=MAX_AMOUNT),
    FieldRule("quantity", INTEGER, minimum=1, maximum=MAX_QUANTITY),
    FieldRule("subtotal", NUMBER, exclusive_minimum=0, maximum=MAX_AMOUNT),
)

SHIPPING_ADDRESS_RULES = (
    FieldRule("fullName"),
    FieldRule("addressLine1"),
    FieldRule("addressLine2", required=False),
    FieldRule("city"),
    FieldRule("state"),
    FieldRule("postalCode"),
    FieldRule("country"),
    FieldRule("phoneNumber"),
)

CREATE_ORDER_RULES = (
    FieldRule("userId"),
    FieldRule("items", ARRAY, min_items=1, each=ORDER_ITEM_RULES),
    FieldRule("subtotal", NUMBER, exclusive_minimum=0, maximum=MAX_AMOUNT),
    FieldRule("tax", NUMBER, minimum=0, maximum=MAX_AMOUNT),
    FieldRule("shippingCost", NUMBER, minimum=0, maximum=MAX_AMOUNT),
    FieldRule("total", NUMBER, exclusive_minimum=0, maximum=MAX_AMOUNT),
    FieldRule("shippingAddress", OBJECT, fields=SHIPPING_ADDRESS_RULES),
    FieldRule("paymentId", required=False),
    FieldRule("notes", required=False),
)

GET_USER_ORDERS_RULES = (
    FieldRule("userId"),
    FieldRule("status", required=False, choices=STATUS_VALUES),
) + _pagination_rules()

GET_ORDER_RULES = (
    FieldRule("orderId"),
    FieldRule("userId"),
)

CANCEL_ORDER_RULES = (
    FieldRule("orderId"),
    FieldRule("userId"),
    FieldRule("reason", required=False),
)

GET_ALL_ORDERS_RULES = (
    FieldRule("status", required=False, choices=STATUS_VALUES),
    FieldRule("userId", required=False),
) + _pagination_rules()

UPDATE_ORDER_STATUS_RULES = (
    FieldRule("orderId"),
    FieldRule("status", choices=STATUS_VALUES),
    FieldRule("trackingNumber", required=False),
    FieldRule("notes", required=False),
)
