import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from src.config import settings
from src.setup.schemas import FirebaseWebConfig
from src.shared.exceptions import InvalidStateError, ValidationError
from src.storage.factory import load_service_account

logger = logging.getLogger(__name__)

# String literals are matched first so a `word:` inside a value ("1:2:web:3") is never taken for a key
_JS_TOKEN = re.compile(
    r'(?P<dq>"(?:\\.|[^"\\])*")'
    r"|(?P<sq>'(?:\\.|[^'\\])*')"
    r"|(?P<key>[A-Za-z_$][\w$]*)(?=\s*:)"
    r"|(?P<comma>,)(?=\s*[}\]])"
)


def _js_object_to_json(text: str) -> str:
    def replace(match: re.Match) -> str:
        if match.group("dq"):
            return match.group("dq")
        if match.group("sq"):
            inner = match.group("sq")[1:-1].replace("\\'", "'").replace('"', '\\"')
            return f'"{inner}"'
        if match.group("key"):
            return f'"{match.group("key")}"'
        return ""

    return _JS_TOKEN.sub(replace, text)


def parse_web_config(raw: str) -> FirebaseWebConfig:
    """
    Accept the console snippet as JSON or as the pasted JS object literal,
    e.g. `const firebaseConfig = { apiKey: '...', ... };`.
    """
    text = raw.strip()
    if "{" in text and "}" in text:
        text = text[text.index("{"): text.rindex("}") + 1]
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        try:
            data = json.loads(_js_object_to_json(text))
        except json.JSONDecodeError as e:
            raise ValidationError([{"field": "web_config", "message": f"Not a valid config object: {e}"}]) from e
    if not isinstance(data, dict):
        raise ValidationError([{"field": "web_config", "message": "Must be an object"}])
    return FirebaseWebConfig.model_validate(data)


def collect_object(lines: Iterable[str]) -> str:
    """Join pasted lines up to the one that closes the outermost `{`."""
    collected = []
    depth = 0
    opened = False
    for line in lines:
        collected.append(line)
        depth += line.count("{") - line.count("}")
        opened = opened or "{" in line
        if opened and depth <= 0:
            break
    return "\n".join(collected)


def parse_service_account(raw: str) -> Dict[str, Any]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError([{"field": "service_account", "message": f"Not valid JSON: {e}"}]) from e
    if not isinstance(data, dict):
        raise ValidationError([{"field": "service_account", "message": "Must be a JSON object"}])
    return data


def render_env(web_config: FirebaseWebConfig, service_account: Dict[str, Any]) -> str:
    lines = [
        "# Firebase client (public)",
        f"FIREBASE_API_KEY={web_config.api_key}",
        f"FIREBASE_AUTH_DOMAIN={web_config.auth_domain}",
        f"FIREBASE_PROJECT_ID={web_config.project_id}",
        f"FIREBASE_STORAGE_BUCKET={web_config.storage_bucket}",
        f"FIREBASE_MESSAGING_SENDER_ID={web_config.messaging_sender_id}",
        f"FIREBASE_APP_ID={web_config.app_id}",
        "",
        "# Firebase admin (server)",
        f"FIREBASE_SERVICE_ACCOUNT='{json.dumps(service_account)}'",
    ]
    return "\n".join(lines) + "\n"


class FirebaseSetupService:
    def __init__(self, env_path: Optional[str] = None):
        self.env_path = Path(env_path or settings.ENV_FILE_PATH)

    def is_configured(self) -> bool:
        if load_service_account(settings.FIREBASE_SERVICE_ACCOUNT) is not None:
            return True
        if self.env_path.exists():
            return "FIREBASE_SERVICE_ACCOUNT=" in self.env_path.read_text(encoding="utf-8")
        return False

    def current_web_config(self) -> FirebaseWebConfig:
        return FirebaseWebConfig(
            api_key=settings.FIREBASE_API_KEY,
            auth_domain=settings.FIREBASE_AUTH_DOMAIN,
            project_id=settings.FIREBASE_PROJECT_ID,
            storage_bucket=settings.FIREBASE_STORAGE_BUCKET,
            messaging_sender_id=settings.FIREBASE_MESSAGING_SENDER_ID,
            app_id=settings.FIREBASE_APP_ID,
        )

    def save(self, web_config: FirebaseWebConfig, service_account: Dict[str, Any], force: bool = False) -> Path:
        if self.is_configured() and not force:
            raise InvalidStateError("Firebase is already configured")

        self.env_path.parent.mkdir(parents=True, exist_ok=True)
        self.env_path.write_text(render_env(web_config, service_account), encoding="utf-8")
        logger.info(f"Wrote Firebase configuration to {self.env_path}; restart to enable the document store")
        return self.env_path
