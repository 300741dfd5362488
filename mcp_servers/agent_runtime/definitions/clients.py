from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from ..engine.errors import DefinitionError

AuthType = Literal["none", "bearer", "apikey", "basic", "oauth2"]
ParameterLocation = Literal["path", "query", "body", "header"]

AUTH_TYPES = ("none", "bearer", "apikey", "basic", "oauth2")
PARAMETER_LOCATIONS = ("path", "query", "body", "header")
HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


@dataclass(slots=True, frozen=True)
class AuthSpec:
    type: AuthType = "none"
    fields: tuple[str, ...] = ()
    header_name: str | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> AuthSpec:
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise DefinitionError("auth must be an object")
        auth_type = raw.get("type") or "none"
        if auth_type not in AUTH_TYPES:
            raise DefinitionError(f"unknown auth type: {auth_type}")
        names = []
        for f in raw.get("fields") or []:
            # Credential fields are either bare names or {name, label, ...} objects.
            if isinstance(f, str):
                names.append(f)
            elif isinstance(f, dict) and isinstance(f.get("name"), str):
                names.append(f["name"])
        header = raw.get("headerName")
        return cls(type=auth_type, fields=tuple(names), header_name=header if isinstance(header, str) else None)


@dataclass(slots=True, frozen=True)
class ClientParameter:
    name: str
    location: ParameterLocation
    type: str = "string"
    required: bool = False
    description: str = ""


@dataclass(slots=True, frozen=True)
class ClientCapabilityDefinition:
    name: str
    method: str
    path: str
    parameters: tuple[ClientParameter, ...] = ()
    body_template: Any | None = None
    headers: tuple[tuple[str, str], ...] = ()
    extract: str | None = None
    field_map: tuple[tuple[str, str], ...] = ()
    description: str = ""

    @classmethod
    def from_dict(cls, raw: Any) -> ClientCapabilityDefinition:
        if not isinstance(raw, dict) or not isinstance(raw.get("name"), str) or not raw["name"]:
            raise DefinitionError("client capability must be an object with a name")
        name = raw["name"]
        method = str(raw.get("method") or "").upper()
        if method not in HTTP_METHODS:
            raise DefinitionError(f"client capability '{name}' has unsupported method: {raw.get('method')}")
        path = raw.get("path")
        if not isinstance(path, str):
            raise DefinitionError(f"client capability '{name}' requires a path")

        params = []
        for p in raw.get("parameters") or []:
            if not isinstance(p, dict) or not isinstance(p.get("name"), str):
                raise DefinitionError(f"client capability '{name}' has a malformed parameter")
            location = p.get("location")
            if location not in PARAMETER_LOCATIONS:
                raise DefinitionError(f"parameter '{p['name']}' has invalid location: {location}")
            params.append(
                ClientParameter(
                    name=p["name"],
                    location=location,
                    type=str(p.get("type") or "string"),
                    required=bool(p.get("required", False)),
                    description=str(p.get("description") or ""),
                )
            )

        request = raw.get("requestTransform") or {}
        response = raw.get("responseTransform") or {}
        if not isinstance(request, dict) or not isinstance(response, dict):
            raise DefinitionError(f"client capability '{name}' transforms must be objects")
        headers = request.get("headers") or {}
        field_map = response.get("map") or {}
        if not isinstance(headers, dict) or not isinstance(field_map, dict):
            raise DefinitionError(f"client capability '{name}' headers/map must be objects")
        extract = response.get("extract")
        return cls(
            name=name,
            method=method,
            path=path,
            parameters=tuple(params),
            body_template=request.get("body"),
            headers=tuple((str(k), str(v)) for k, v in headers.items()),
            extract=extract if isinstance(extract, str) else None,
            field_map=tuple((str(k), str(v)) for k, v in field_map.items()),
            description=str(raw.get("description") or ""),
        )


@dataclass(slots=True, frozen=True)
class ClientDefinition:
    id: str
    name: str
    capabilities: tuple[ClientCapabilityDefinition, ...]
    base_url: str = ""
    auth: AuthSpec = AuthSpec()
    contains_script: bool = False
    description: str = ""
    version: str = "1.0.0"

    @classmethod
    def from_dict(cls, raw: Any) -> ClientDefinition:
        if not isinstance(raw, dict):
            raise DefinitionError("client definition must be an object")
        client_id = raw.get("id")
        if not isinstance(client_id, str) or not client_id.strip():
            raise DefinitionError("client definition requires an id")
        caps_raw = raw.get("capabilities")
        if not isinstance(caps_raw, list):
            raise DefinitionError(f"client '{client_id}' capabilities must be a list")
        capabilities = tuple(ClientCapabilityDefinition.from_dict(c) for c in caps_raw)
        names = [c.name for c in capabilities]
        if len(set(names)) != len(names):
            raise DefinitionError(f"client '{client_id}' has duplicate capability names")
        base_url = raw.get("baseUrl") or ""
        if not isinstance(base_url, str):
            raise DefinitionError(f"client '{client_id}' baseUrl must be a string")
        return cls(
            id=client_id,
            name=str(raw.get("name") or client_id),
            capabilities=capabilities,
            base_url=base_url,
            auth=AuthSpec.from_dict(raw.get("auth")),
            contains_script=bool(raw.get("containsJavaScript")),
            description=str(raw.get("description") or ""),
            version=str(raw.get("version") or "1.0.0"),
        )

    def capability(self, name: str) -> ClientCapabilityDefinition | None:
        for cap in self.capabilities:
            if cap.name == name:
                return cap
        return None

    def metadata(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "baseUrl": self.base_url,
            "authType": self.auth.type,
            "capabilities": [
                {
                    "name": c.name,
                    "description": c.description,
                    "method": c.method,
                    "path": c.path,
                    "parameters": [
                        {"name": p.name, "location": p.location, "required": p.required} for p in c.parameters
                    ],
                }
                for c in self.capabilities
            ],
        }
