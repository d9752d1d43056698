from pydantic import BaseModel, ConfigDict


class FileLocation(BaseModel):
    """Value object pairing a content fingerprint with the path it resolves to."""

    fingerprint: str
    path: str

    model_config = ConfigDict(frozen=True)

    @property
    def url(self) -> str:
        return f"/md5?hash={self.fingerprint}"
