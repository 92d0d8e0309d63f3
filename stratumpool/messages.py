"""Stratum protocol messages and their JSON-RPC wire form."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

Id = Union[int, str]

_U64_MAX = 2**64 - 1


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _parse_id(value: Any) -> Id | None:
    """Validate a JSON-RPC id: an unsigned 64-bit number, a string or null."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"invalid id: {value!r}")
    if isinstance(value, int):
        if not 0 <= value <= _U64_MAX:
            raise ValueError(f"id out of range: {value}")
        return value
    if isinstance(value, str):
        return value
    raise ValueError(f"invalid id: {value!r}")


def _require_mapping(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


@dataclass
class ErrorObject:
    """The error member of a Stratum response."""

    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            out["data"] = self.data
        return out

    def to_json(self) -> str:
        return _dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Any) -> ErrorObject:
        data = _require_mapping(data)
        code = data.get("code")
        message = data.get("message")
        if isinstance(code, bool) or not isinstance(code, int):
            raise ValueError("error code must be an integer")
        if not isinstance(message, str):
            raise ValueError("error message must be a string")
        return cls(code=code, message=message, data=data.get("data"))


@dataclass
class Request:
    """A request from a miner to the server; all params are strings."""

    method: str
    params: list[str] = field(default_factory=list)
    id: Id | None = None

    @classmethod
    def new_subscribe(
        cls,
        id: int,
        user_agent: str,
        version: str,
        extra_nonce: str | None = None,
    ) -> Request:
        params = [f"{user_agent}/{version}"]
        if extra_nonce is not None:
            params.append(extra_nonce)
        return cls(method="mining.subscribe", params=params, id=id)

    @classmethod
    def new_authorize(
        cls, id: int, username: str, password: str | None = None
    ) -> Request:
        params = [username]
        if password is not None:
            params.append(password)
        return cls(method="mining.authorize", params=params, id=id)

    @classmethod
    def new_submit(
        cls,
        id: int,
        username: str,
        job_id: str,
        extra_nonce2: str,
        n_time: str,
        nonce: str,
    ) -> Request:
        params = [username, job_id, extra_nonce2, n_time, nonce]
        return cls(method="mining.submit", params=params, id=id)

    def to_dict(self) -> dict:
        out: dict[str, Any] = {}
        if self.id is not None:
            out["id"] = self.id
        out["method"] = self.method
        out["params"] = list(self.params)
        return out

    def to_json(self) -> str:
        return _dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Any) -> Request:
        data = _require_mapping(data)
        if "method" not in data:
            raise ValueError("missing field `method`")
        method = data["method"]
        if not isinstance(method, str):
            raise ValueError("method must be a string")
        params = data.get("params", [])
        if not isinstance(params, list) or not all(isinstance(p, str) for p in params):
            raise ValueError("params must be an array of strings")
        return cls(method=method, params=list(params), id=_parse_id(data.get("id")))

    @classmethod
    def from_json(cls, text: str) -> Request:
        return cls.from_dict(json.loads(text))


@dataclass
class Response:
    """A response from the server to a miner."""

    id: Id | None = None
    result: Any = None
    error: ErrorObject | None = None

    @classmethod
    def new_set_difficulty_response(
        cls,
        id: Id | None,
        difficulty: int,
        extra_nonce: str,
        extra_nonce_size: int,
    ) -> Response:
        if not 0 <= extra_nonce_size <= 0xFF:
            raise ValueError("extra_nonce_size must fit in one byte")
        result = ["mining.set_difficulty", difficulty, extra_nonce, extra_nonce_size]
        return cls(id=id, result=result)

    @classmethod
    def new_ok(cls, id: Id | None, result: Any) -> Response:
        return cls(id=id, result=result)

    @classmethod
    def new_error(cls, id: Id | None, code: int, message: str) -> Response:
        return cls(id=id, error=ErrorObject(code=code, message=message))

    def to_dict(self) -> dict:
        out: dict[str, Any] = {}
        if self.id is not None:
            out["id"] = self.id
        if self.result is not None:
            out["result"] = self.result
        if self.error is not None:
            out["error"] = self.error.to_dict()
        return out

    def to_json(self) -> str:
        return _dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Any) -> Response:
        data = _require_mapping(data)
        error = data.get("error")
        return cls(
            id=_parse_id(data.get("id")),
            result=data.get("result"),
            error=ErrorObject.from_dict(error) if error is not None else None,
        )

    @classmethod
    def from_json(cls, text: str) -> Response:
        return cls.from_dict(json.loads(text))


@dataclass
class NotifyParams:
    """Parameters of mining.notify, sent on the wire as a 9-element array."""

    job_id: str
    prevhash: str
    coinbase1: str
    coinbase2: str
    merkle_branches: list[str]
    version: str
    nbits: str
    ntime: str
    clean_jobs: bool

    def to_list(self) -> list:
        return [
            self.job_id,
            self.prevhash,
            self.coinbase1,
            self.coinbase2,
            list(self.merkle_branches),
            self.version,
            self.nbits,
            self.ntime,
            self.clean_jobs,
        ]

    @classmethod
    def from_list(cls, values: Any) -> NotifyParams:
        if not isinstance(values, list):
            raise ValueError("notify params must be an array")
        if len(values) != 9:
            raise ValueError("Invalid number of fields")

        def text(value: Any) -> str:
            return value if isinstance(value, str) else ""

        branches = values[4]
        merkle = [text(b) for b in branches] if isinstance(branches, list) else []
        clean = values[8] if isinstance(values[8], bool) else False
        return cls(
            job_id=text(values[0]),
            prevhash=text(values[1]),
            coinbase1=text(values[2]),
            coinbase2=text(values[3]),
            merkle_branches=merkle,
            version=text(values[5]),
            nbits=text(values[6]),
            ntime=text(values[7]),
            clean_jobs=clean,
        )


@dataclass
class SetDifficultyNotification:
    """The mining.set_difficulty notification."""

    method: str
    params: list[int]

    def to_dict(self) -> dict:
        return {"method": self.method, "params": list(self.params)}

    def to_json(self) -> str:
        return _dumps(self.to_dict())


@dataclass
class Notify:
    """The mining.notify notification announcing new work."""

    method: str
    params: NotifyParams

    @classmethod
    def new_notify(cls, params: NotifyParams) -> Notify:
        return cls(method="mining.notify", params=params)

    @classmethod
    def new_set_difficulty_notification(
        cls, difficulty: int
    ) -> SetDifficultyNotification:
        return SetDifficultyNotification(
            method="mining.set_difficulty", params=[difficulty]
        )

    def to_dict(self) -> dict:
        return {"method": self.method, "params": self.params.to_list()}

    def to_json(self) -> str:
        return _dumps(self.to_dict())