"""
Typed payloads that may accompany a booking transition.

Instead of a free-form dict, callers attach a list of known payloads,
discriminated by `kind`:

    TransitionMetadata(payloads=[
        InventoryConsumption(items=[ConsumedItem(item_code="CAP-10", quantity=2)]),
        TransitionNote(reason="customer asked for extra sealing"),
    ])
"""
from typing import Annotated, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, Field, field_validator, model_validator


class ConsumedItem(BaseModel):
    item_code: str = Field(min_length=1, max_length=64)
    quantity: int = Field(gt=0)


class InventoryConsumption(BaseModel):
    """Parts consumed by the job; deducted when the booking completes"""

    kind: Literal["inventory_consumption"] = "inventory_consumption"
    items: list[ConsumedItem] = Field(min_length=1)

    @field_validator("items")
    @classmethod
    def unique_item_codes(cls, items: list[ConsumedItem]) -> list[ConsumedItem]:
        # one ledger entry per (booking, item): a repeated code would be swallowed as already processed
        codes = [item.item_code for item in items]
        if len(codes) != len(set(codes)):
            raise ValueError("each item_code may appear only once per consumption request")
        return items


class PartnerAssignment(BaseModel):
    kind: Literal["partner_assignment"] = "partner_assignment"
    partner_id: int = Field(gt=0)


class TransitionNote(BaseModel):
    kind: Literal["note"] = "note"
    reason: str = Field(min_length=1, max_length=500)


TransitionPayload = Annotated[
    Union[InventoryConsumption, PartnerAssignment, TransitionNote],
    Field(discriminator="kind"),
]

P = TypeVar("P", InventoryConsumption, PartnerAssignment, TransitionNote)


class TransitionMetadata(BaseModel):
    payloads: list[TransitionPayload] = Field(default_factory=list)

    @model_validator(mode="after")
    def one_payload_per_kind(self) -> "TransitionMetadata":
        kinds = [payload.kind for payload in self.payloads]
        if len(kinds) != len(set(kinds)):
            raise ValueError("each payload kind may appear only once")
        return self

    def find(self, payload_type: type[P]) -> Optional[P]:
        for payload in self.payloads:
            if isinstance(payload, payload_type):
                return payload
        return None

    def to_audit(self) -> list[dict]:
        return [payload.model_dump() for payload in self.payloads]
