"""
Base schemas shared by the scheduling request and response models.
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic_core import core_schema

CENTS = Decimal("0.01")


class StandardizedModel(BaseModel):
    """Response base: enums as values, fields settable by alias or name"""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True)


class StrictRequestModel(BaseModel):
    """Request DTO base that always forbids unexpected fields."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)


class Money(Decimal):
    """
    Non-negative amount held to the cent; serializes as float.

    Lesson prices and subscription rates arrive from the models as decimal
    strings (``"50.00"``) and leave the API as numbers.
    """

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: Any) -> core_schema.CoreSchema:
        def validate_money(value: Any) -> Decimal:
            try:
                amount = Decimal(str(value)) if isinstance(value, (int, float, str)) else value
            except InvalidOperation:
                raise ValueError(f"Invalid amount: {value!r}")
            if not isinstance(amount, Decimal) or not amount.is_finite():
                raise ValueError(f"Cannot convert {type(value)} to Money")
            if amount < 0:
                raise ValueError("Amount must not be negative")
            return amount.quantize(CENTS, rounding=ROUND_HALF_UP)

        return core_schema.no_info_after_validator_function(
            validate_money,
            core_schema.union_schema(
                [
                    core_schema.int_schema(),
                    core_schema.float_schema(),
                    core_schema.str_schema(),
                    core_schema.is_instance_schema(Decimal),
                ]
            ),
            serialization=core_schema.plain_serializer_function_ser_schema(
                float,
                info_arg=False,
                return_schema=core_schema.float_schema(),
            ),
        )
