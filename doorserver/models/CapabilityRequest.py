from pydantic import BaseModel, ConfigDict, Field

REQUIRED_FIELDS = ("name", "host", "reason", "timestamp", "startTime", "duration", "sig")

class CapabilityRequest(BaseModel):
    """
    The claim carried by a signed access URL.

    Values are kept as the strings received in the query so the signed message
    can be rebuilt byte for byte.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    host: str
    reason: str
    timestamp: str = Field(description="Unix seconds when the link was generated")
    start_time: str = Field(alias="startTime", description="Unix seconds when the access window opens")
    duration: str = Field(description="Length of the access window in minutes")
    event_url: str | None = Field(default=None, alias="eventUrl")
    sig: str = ""

    @property
    def window_start(self) -> int:
        return int(self.start_time)

    @property
    def window_end(self) -> int:
        return int(self.start_time) + int(self.duration) * 60

    def canonical_message(self) -> str:
        message = (
            f"name={self.name}&host={self.host}&reason={self.reason}"
            f"&timestamp={self.timestamp}&startTime={self.start_time}&duration={self.duration}"
        )
        if self.event_url:
            message += f"&eventUrl={self.event_url}"
        return message

class CapabilityVerification(BaseModel):
    public_key: str
    authorized_name: str
    secret_bypass: bool = False
    event_url: str | None = None
