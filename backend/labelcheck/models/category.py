"""
Product categories (as classified upstream) and the ingredient checks they map to.
"""
import re
from enum import Enum

from labelcheck.errors import InvalidInputError
from labelcheck.reference.reference_schema import DatasetKind


class ProductCategory(str, Enum):
    CONVENTIONAL_FOOD = "CONVENTIONAL_FOOD"
    NON_ALCOHOLIC_BEVERAGE = "NON_ALCOHOLIC_BEVERAGE"
    ALCOHOLIC_BEVERAGE = "ALCOHOLIC_BEVERAGE"
    DIETARY_SUPPLEMENT = "DIETARY_SUPPLEMENT"

    @classmethod
    def parse(cls, value) -> "ProductCategory":
        """Accept enum members and values like "dietary supplement" or "Non-Alcoholic Beverage"."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = re.sub(r"[\s\-]+", "_", value.strip()).upper()
            try:
                return cls(key)
            except ValueError:
                pass
        raise InvalidInputError(
            f"Unknown product category {value!r}",
            metadata={"allowed": [c.value for c in cls]},
        )


class ComplianceCheck(str, Enum):
    GRAS = "GRAS"
    DIETARY_INGREDIENT = "DIETARY_INGREDIENT"
    ALLERGEN = "ALLERGEN"

    @property
    def datasets(self) -> tuple[DatasetKind, ...]:
        """Datasets consulted, in fallback order."""
        return _CHECK_DATASETS[self]

    @property
    def element(self) -> str:
        """Compliance-table label."""
        return _CHECK_ELEMENTS[self]


_CHECK_DATASETS = {
    ComplianceCheck.GRAS: (DatasetKind.GRAS,),
    # NDI notifications first, then the pre-1994 grandfathered list
    ComplianceCheck.DIETARY_INGREDIENT: (DatasetKind.NDI, DatasetKind.ODI),
    ComplianceCheck.ALLERGEN: (DatasetKind.ALLERGEN_DERIVATIVE,),
}

_CHECK_ELEMENTS = {
    ComplianceCheck.GRAS: "GRAS Ingredient Compliance",
    ComplianceCheck.DIETARY_INGREDIENT: "NDI Ingredient Compliance",
    ComplianceCheck.ALLERGEN: "Food Allergen Labeling",
}
