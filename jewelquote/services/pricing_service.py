"""
Pricing calculator for holistic (single piece) jewellery quotes.

Pure functions over a typed cost breakdown. Nothing here touches the
database and nothing is rounded: two-decimal formatting is left to whoever
displays the numbers.
"""

from dataclasses import dataclass, field, asdict
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from jewelquote.exceptions import ValidationError

ZERO = Decimal('0')
ONE = Decimal('1')
HUNDRED = Decimal('100')

# Standard VAT rate applied to materials and VAT-able components
VAT_RATE = Decimal('0.15')


def lenient_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Coerce a loosely typed UI value to Decimal; anything unusable becomes ``default``."""
    if value is None or isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    return result if result.is_finite() else default


def lenient_flag(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def _text(value: Any) -> str:
    return '' if value is None else str(value).strip()


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    """A nested object of the breakdown; any other shape counts as empty."""
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _lines(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    """Line objects of a list section; non-list sections and non-object entries are ignored."""
    value = data.get(key)
    if not isinstance(value, list):
        return []
    return [line for line in value if isinstance(line, dict)]


@dataclass
class LabourInput:
    hours: Decimal = ZERO
    rate: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.hours * self.rate


@dataclass
class MaterialInput:
    """Metal for the piece: a catalog component or a custom named material."""
    weight: Decimal = ZERO
    price_per_unit: Decimal = ZERO
    add_vat: bool = True
    loss_factor: Decimal = ONE
    component_id: Optional[str] = None
    custom_name: Optional[str] = None

    @property
    def is_custom(self) -> bool:
        return bool(self.custom_name) and not self.component_id


@dataclass
class DiamondLine:
    """One stone line. Only cost_each and quantity are priced."""
    cost_each: Decimal = ZERO
    quantity: Decimal = ZERO
    size_mm: str = ''
    size_ct: str = ''
    colour: str = ''
    clarity: str = ''
    cut_type: str = ''

    @property
    def total(self) -> Decimal:
        return self.cost_each * self.quantity

    @property
    def description(self) -> str:
        parts = []
        if self.size_mm:
            parts.append(f'{self.size_mm}mm')
        if self.size_ct:
            parts.append(f'{self.size_ct}ct')
        parts.extend(p for p in (self.colour, self.clarity, self.cut_type) if p)
        return ' '.join(parts) or 'Diamond'


@dataclass
class ComponentLine:
    description: str = ''
    cost_ex_vat: Decimal = ZERO
    add_vat: bool = False

    def total(self, vat_rate: Decimal = VAT_RATE) -> Decimal:
        return self.cost_ex_vat * (ONE + vat_rate if self.add_vat else ONE)


@dataclass
class OptionalCosts:
    setting: Decimal = ZERO
    packaging: Decimal = ZERO
    courier: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.setting + self.packaging + self.courier


@dataclass
class CostBreakdown:
    """
    Everything the holistic quote page authors, stored on the quote as JSON.

    ``from_dict`` is deliberately forgiving (missing or non-numeric numbers
    are 0) except for the loss factor, which defaults to the neutral 1 and
    may not drop below it.
    """
    labour: LabourInput = field(default_factory=LabourInput)
    material: MaterialInput = field(default_factory=MaterialInput)
    diamonds: List[DiamondLine] = field(default_factory=list)
    components: List[ComponentLine] = field(default_factory=list)
    optional_costs: OptionalCosts = field(default_factory=OptionalCosts)
    markup_percent: Decimal = ZERO
    cost_price_multiplier: Decimal = ZERO

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'CostBreakdown':
        data = data or {}
        if not isinstance(data, dict):
            raise ValidationError('quote_data must be an object', field='quote_data')

        labour = _section(data, 'labour')
        material = _section(data, 'material')
        optional = _section(data, 'optional_costs')

        loss_factor = lenient_decimal(material.get('loss_factor'), default=ONE)
        if loss_factor < ONE:
            raise ValidationError('material loss_factor must be at least 1', field='loss_factor')

        return cls(
            labour=LabourInput(
                hours=lenient_decimal(labour.get('hours')),
                rate=lenient_decimal(labour.get('rate')),
            ),
            material=MaterialInput(
                weight=lenient_decimal(material.get('weight')),
                price_per_unit=lenient_decimal(material.get('price_per_unit')),
                add_vat=lenient_flag(material.get('add_vat'), default=True),
                loss_factor=loss_factor,
                component_id=_text(material.get('component_id')) or None,
                custom_name=_text(material.get('custom_name')) or None,
            ),
            diamonds=[
                DiamondLine(
                    cost_each=lenient_decimal(line.get('cost_each')),
                    quantity=lenient_decimal(line.get('quantity')),
                    size_mm=_text(line.get('size_mm')),
                    size_ct=_text(line.get('size_ct')),
                    colour=_text(line.get('colour')),
                    clarity=_text(line.get('clarity')),
                    cut_type=_text(line.get('cut_type')),
                )
                for line in _lines(data, 'diamonds')
            ],
            components=[
                ComponentLine(
                    description=_text(line.get('description')),
                    cost_ex_vat=lenient_decimal(line.get('cost_ex_vat')),
                    add_vat=lenient_flag(line.get('add_vat'), default=False),
                )
                for line in _lines(data, 'components')
            ],
            optional_costs=OptionalCosts(
                setting=lenient_decimal(optional.get('setting')),
                packaging=lenient_decimal(optional.get('packaging')),
                courier=lenient_decimal(optional.get('courier')),
            ),
            markup_percent=lenient_decimal(data.get('markup_percent')),
            cost_price_multiplier=lenient_decimal(data.get('cost_price_multiplier')),
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe form; Decimals become strings so nothing is rounded by float."""
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class PricingResult:
    labour_total: Decimal
    material_base: Decimal
    material_vat: Decimal
    material_total: Decimal
    diamonds_total: Decimal
    components_total: Decimal
    optional_total: Decimal
    sub_total: Decimal
    markup_amount: Decimal
    retail_price: Decimal
    cost_price: Decimal

    def to_dict(self) -> Dict[str, str]:
        return _jsonable(asdict(self))


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    return value


def calculate_material(material: MaterialInput, vat_rate: Decimal = VAT_RATE) -> Dict[str, Decimal]:
    base = material.weight * material.price_per_unit
    vat = base * vat_rate if material.add_vat else ZERO
    return {
        'material_base': base,
        'material_vat': vat,
        'material_total': (base + vat) * material.loss_factor,
    }


def calculate_pricing(breakdown: CostBreakdown, vat_rate: Decimal = VAT_RATE) -> PricingResult:
    """
    Derive subtotal, markup, retail and reseller cost price.

    sub_total = labour + material + diamonds + components + setting + packaging + courier
    retail_price = sub_total + sub_total * markup_percent / 100
    cost_price = sub_total * cost_price_multiplier (independent of markup)
    """
    labour_total = breakdown.labour.total
    material = calculate_material(breakdown.material, vat_rate)
    diamonds_total = sum((line.total for line in breakdown.diamonds), ZERO)
    components_total = sum((line.total(vat_rate) for line in breakdown.components), ZERO)
    optional_total = breakdown.optional_costs.total

    sub_total = (
        labour_total
        + material['material_total']
        + diamonds_total
        + components_total
        + optional_total
    )
    markup_amount = sub_total * breakdown.markup_percent / HUNDRED

    return PricingResult(
        labour_total=labour_total,
        material_base=material['material_base'],
        material_vat=material['material_vat'],
        material_total=material['material_total'],
        diamonds_total=diamonds_total,
        components_total=components_total,
        optional_total=optional_total,
        sub_total=sub_total,
        markup_amount=markup_amount,
        retail_price=sub_total + markup_amount,
        cost_price=sub_total * breakdown.cost_price_multiplier,
    )


def vat_rate_from_pct(vat_rate_pct: Any) -> Decimal:
    """Config stores the rate as a percentage (15); the calculator wants 0.15."""
    return lenient_decimal(vat_rate_pct, default=VAT_RATE * HUNDRED) / HUNDRED
