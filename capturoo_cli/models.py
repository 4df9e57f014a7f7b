from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List


@dataclass
class FirebaseConfig:
    api_key: str
    auth_domain: str = ""
    database_url: str = ""
    project_id: str = ""
    storage_bucket: str = ""
    messaging_sender_id: str = ""
    app_id: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FirebaseConfig":
        return cls(
            api_key=data["apiKey"],
            auth_domain=data.get("authDomain", ""),
            database_url=data.get("databaseURL", ""),
            project_id=data.get("projectId", ""),
            storage_bucket=data.get("storageBucket", ""),
            messaging_sender_id=data.get("messagingSenderId", ""),
            app_id=data.get("appId", ""),
        )


@dataclass
class Account:
    account_id: str
    uid: str = ""
    role: str = ""
    email: str = ""
    display_name: str = ""
    created: str = ""
    modified: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        return cls(
            account_id=data.get("accountId", ""),
            uid=data.get("uid", ""),
            role=data.get("role", ""),
            email=data.get("email", ""),
            display_name=data.get("displayName", ""),
            created=data.get("created", ""),
            modified=data.get("modified", ""),
        )


@dataclass
class Bucket:
    bucket_id: str
    account_id: str = ""
    resource_name: str = ""
    bucket_name: str = ""
    public_api_key: str = ""
    created: str = ""
    modified: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bucket":
        return cls(
            bucket_id=data.get("bucketId", ""),
            account_id=data.get("accountId", ""),
            resource_name=data.get("resourceName", ""),
            bucket_name=data.get("bucketName", ""),
            public_api_key=data.get("publicApiKey", ""),
            created=data.get("created", ""),
            modified=data.get("modified", ""),
        )

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Webhook:
    webhook_id: str
    code: str = ""
    url: str = ""
    events: List[str] = field(default_factory=list)
    enabled: bool = False
    created: str = ""
    modified: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Webhook":
        return cls(
            webhook_id=data.get("webhookId", ""),
            code=data.get("code", ""),
            url=data.get("url", ""),
            events=list(data.get("events") or []),
            enabled=bool(data.get("enabled", False)),
            created=data.get("created", ""),
            modified=data.get("modified", ""),
        )

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class System:
    client_version: str = ""
    host: str = ""
    origin: str = ""
    referrer: str = ""
    user_agent: str = ""
    remote_addr: str = ""
    created: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "System":
        return cls(
            client_version=data.get("clientVersion", ""),
            host=data.get("host", ""),
            origin=data.get("Origin", data.get("origin", "")),
            referrer=data.get("referrer", ""),
            user_agent=data.get("userAgent", ""),
            remote_addr=data.get("remoteAddr", ""),
            created=data.get("created", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "clientVersion": self.client_version,
            "host": self.host,
            "Origin": self.origin,
            "referrer": self.referrer,
            "userAgent": self.user_agent,
            "remoteAddr": self.remote_addr,
            "created": self.created,
        }


@dataclass
class Lead:
    lead_id: str
    system: System = field(default_factory=System)
    data: Dict[str, Any] = field(default_factory=dict)
    tracking: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Lead":
        return cls(
            lead_id=data.get("leadId", ""),
            system=System.from_dict(data.get("system") or {}),
            data=dict(data.get("data") or {}),
            tracking=dict(data.get("tracking") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "leadId": self.lead_id,
            "system": self.system.to_dict(),
            "data": self.data,
            "tracking": self.tracking,
        }
