from pydantic import BaseModel, ConfigDict, Field

class AuthorizedKey(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    public_key: str = Field(alias="publicKey", description="Checksummed or lowercase 0x address")
    description: str | None = None

    def matches(self, address: str) -> bool:
        return self.public_key.lower() == address.lower()
