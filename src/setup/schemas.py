from typing import Any, Dict
from pydantic import BaseModel, ConfigDict, Field, field_validator


class FirebaseWebConfig(BaseModel):
    """Public client config as shown in the Firebase console."""
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field("", alias="apiKey")
    auth_domain: str = Field("", alias="authDomain")
    project_id: str = Field("", alias="projectId")
    storage_bucket: str = Field("", alias="storageBucket")
    messaging_sender_id: str = Field("", alias="messagingSenderId")
    app_id: str = Field("", alias="appId")


class FirebaseSetupRequest(BaseModel):
    web_config: FirebaseWebConfig
    service_account: Dict[str, Any]

    @field_validator("service_account")
    @classmethod
    def has_key_material(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        missing = [key for key in ("client_email", "private_key") if not value.get(key)]
        if missing:
            raise ValueError(f"Service account is missing {', '.join(missing)}")
        return value


class FirebaseSetupStatus(BaseModel):
    configured: bool
    web_config: FirebaseWebConfig
    env_file: str
