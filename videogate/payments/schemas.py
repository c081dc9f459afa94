from decimal import Decimal
from typing import Annotated, Any, Dict, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PositiveInt


class VerifyPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    asset_id: PositiveInt = Field(alias='assetId')
    receipt: Union[
        Annotated[Dict[str, Any], Field(min_length=1)],
        Annotated[str, Field(min_length=1)],
    ]
    user_address: Optional[str] = Field(default=None, alias='userAddress')


class ReceiptPayload(BaseModel):
    """Fields a development receipt may carry; everything else is ignored."""
    model_config = ConfigDict(extra='ignore')

    asset_id: Optional[int] = Field(
        default=None, validation_alias=AliasChoices('assetId', 'asset_id'))
    user_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices('userId', 'userAddress', 'user_address'),
    )
    amount: Optional[Decimal] = None
    transaction_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices('transactionId', 'transaction_id'),
    )


class ProviderVerification(BaseModel):
    """Response body of the payment backend's verify endpoint."""
    model_config = ConfigDict(extra='ignore')

    verified: bool
    payer: Optional[str] = None
    amount: Optional[Decimal] = None
    transaction_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices('transactionId', 'transaction_id'))
    asset_id: Optional[int] = Field(
        default=None, validation_alias=AliasChoices('assetId', 'asset_id'))


class WebhookMetadata(BaseModel):
    model_config = ConfigDict(extra='ignore')

    asset_id: Optional[int] = None


class WebhookCustomer(BaseModel):
    model_config = ConfigDict(extra='ignore')

    address: Optional[str] = None


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra='ignore')

    id: Optional[str] = None
    transaction_id: Optional[str] = None
    asset_id: Optional[int] = None
    user_address: Optional[str] = None
    amount: Optional[Decimal] = None
    total: Optional[Decimal] = None
    metadata: Optional[WebhookMetadata] = None
    customer: Optional[WebhookCustomer] = None

    def resolved_asset_id(self) -> Optional[int]:
        if self.metadata and self.metadata.asset_id is not None:
            return self.metadata.asset_id
        return self.asset_id

    def resolved_payer(self) -> Optional[str]:
        if self.customer and self.customer.address:
            return self.customer.address
        return self.user_address

    def resolved_amount(self) -> Optional[Decimal]:
        return self.amount if self.amount is not None else self.total

    def resolved_transaction_id(self) -> Optional[str]:
        return self.id or self.transaction_id
