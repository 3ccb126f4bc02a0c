"""Scenario documents for the TRADE-UP escrow.

A scenario describes collections with their initial owners, one escrow, and a
time-ordered list of steps. Running it replays the steps against in-memory
collections with a manual clock and reports what happened:

 - per-step outcome (result, or the rejection class and message)
 - the escrow's final status and ledger
 - final ownership of every asset
 - every event the escrow published

Scenarios are YAML (or JSON) validated against `schemas/scenario.schema.json`.
"""

from __future__ import annotations

import json
import pathlib
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Optional

import yaml
from jsonschema import Draft202012Validator

from tradeup.assets import WILDCARD_ASSET_ID, AssetSpec
from tradeup.config import ConfigError
from tradeup.custody import CustodyError, InMemoryAssetCollection, collections_by_name
from tradeup.escrow import TradeUpEscrow
from tradeup.events import EventBus, EventRecorder
from tradeup.hardening import EscrowError
from tradeup.observability import generate_correlation_id, correlation_id_var, set_correlation_id
from tradeup.status import ManualClock

SCHEMA_DIR = pathlib.Path(__file__).resolve().parent / "schemas"
SCENARIO_SCHEMA = SCHEMA_DIR / "scenario.schema.json"


class ScenarioError(Exception):
    """Scenario document is invalid or inconsistent."""


@lru_cache(maxsize=1)
def scenario_validator() -> Draft202012Validator:
    schema = json.loads(SCENARIO_SCHEMA.read_text(encoding="utf-8"))
    return Draft202012Validator(schema)


def validate_scenario(doc: Any) -> List[str]:
    """Validate a scenario document. Returns error messages (empty if valid)."""
    errors = sorted(scenario_validator().iter_errors(doc), key=lambda e: list(e.path))
    return [f"{error.json_path}: {error.message}" for error in errors]


def load_scenario(path: pathlib.Path) -> Dict[str, Any]:
    """Load and validate a scenario file."""
    path = pathlib.Path(path)
    if not path.exists():
        raise ScenarioError(f"Scenario file not found: {path}")
    try:
        doc = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ScenarioError(f"Invalid YAML in {path}: {e}") from e

    errs = validate_scenario(doc)
    if errs:
        raise ScenarioError(f"invalid scenario: {path}: {errs[0]}")
    return doc


@dataclass
class StepOutcome:
    """Result of one scenario step."""
    step: int
    at: int
    action: str
    actor: str = ""
    ok: bool = True
    status: str = ""
    result: Any = None
    error_type: str = ""
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "step": self.step,
            "at": self.at,
            "action": self.action,
            "ok": self.ok,
            "status": self.status,
        }
        if self.actor:
            out["actor"] = self.actor
        if self.ok:
            out["result"] = self.result
        else:
            out["error_type"] = self.error_type
            out["error"] = self.error
        return out


@dataclass
class ScenarioReport:
    name: str
    escrow: Dict[str, Any]
    steps: List[StepOutcome] = field(default_factory=list)
    ownership: Dict[str, Dict[int, str]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def failed_steps(self) -> List[StepOutcome]:
        return [s for s in self.steps if not s.ok]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "escrow": self.escrow,
            "steps": [s.to_dict() for s in self.steps],
            "ownership": self.ownership,
            "events": self.events,
        }


def _spec(doc: Dict[str, Any], collections: Dict[str, InMemoryAssetCollection]) -> AssetSpec:
    name = doc["collection"]
    if name not in collections:
        raise ScenarioError(f"Unknown collection in escrow spec: {name}")
    asset_id = WILDCARD_ASSET_ID if doc["asset_id"] == "*" else doc["asset_id"]
    return AssetSpec(collections[name], asset_id)


def build_collections(doc: Dict[str, Any]) -> Dict[str, InMemoryAssetCollection]:
    collections = collections_by_name(
        InMemoryAssetCollection(c["name"]) for c in doc["collections"]
    )
    for c in doc["collections"]:
        for asset in c.get("assets") or []:
            collections[c["name"]].mint(asset["owner"], asset["asset_id"])
    return collections


def build_escrow(
    doc: Dict[str, Any],
    collections: Dict[str, InMemoryAssetCollection],
    clock: ManualClock,
    event_bus: Optional[EventBus] = None,
) -> TradeUpEscrow:
    params = doc["escrow"]
    minter = None
    if params.get("minter"):
        if params["minter"] not in collections:
            raise ScenarioError(f"Unknown minter collection: {params['minter']}")
        minter = collections[params["minter"]]

    escrow = TradeUpEscrow.create(
        starting=_spec(params["starting"], collections),
        final=_spec(params["final"], collections),
        ttl_seconds=params.get("ttl_seconds"),
        clock=clock,
        minter=minter,
        address=params.get("address"),
        event_bus=event_bus,
        max_chain_length=params.get("max_chain_length"),
    )
    return escrow


def _run_step(
    step: Dict[str, Any],
    escrow: TradeUpEscrow,
    collections: Dict[str, InMemoryAssetCollection],
) -> Any:
    action = step["action"]
    if action == "deposit":
        name = step["collection"]
        if name not in collections:
            raise ScenarioError(f"Unknown collection: {name}")
        data = step.get("data", "").encode("utf-8")
        collections[name].safe_transfer_from(step["actor"], escrow, step["asset_id"], data)
        return {"index": len(escrow) - 1}
    if action == "redeem":
        return escrow.redeem_at(step["actor"], step["index"]).to_dict()
    if action == "redeem_all":
        return [r.to_dict() for r in escrow.redeem_all(step["actor"])]
    return {"deposits": len(escrow)}


def run_scenario(doc: Dict[str, Any]) -> ScenarioReport:
    """Replay a validated scenario document."""
    errs = validate_scenario(doc)
    if errs:
        raise ScenarioError(f"invalid scenario: {errs[0]}")

    clock = ManualClock(start=doc.get("start_time", 0))
    try:
        collections = build_collections(doc)
    except CustodyError as e:
        raise ScenarioError(f"invalid collections: {e}") from e
    bus = EventBus()
    recorder = EventRecorder(bus)
    try:
        escrow = build_escrow(doc, collections, clock, event_bus=bus)
    except ConfigError as e:
        raise ScenarioError(f"invalid escrow parameters: {e}") from e

    report = ScenarioReport(name=doc.get("name", ""), escrow={})
    for i, step in enumerate(doc["steps"]):
        if step["at"] < clock():
            raise ScenarioError(f"step {i} at t={step['at']} is earlier than t={clock()}")
        clock.set(step["at"])

        outcome = StepOutcome(step=i, at=step["at"], action=step["action"], actor=step.get("actor", ""))
        token = set_correlation_id(generate_correlation_id())
        try:
            outcome.result = _run_step(step, escrow, collections)
        except (EscrowError, CustodyError) as e:
            outcome.ok = False
            outcome.error_type = type(e).__name__
            outcome.error = str(e)
        finally:
            correlation_id_var.reset(token)
        outcome.status = escrow.status().value
        report.steps.append(outcome)

    report.escrow = escrow.describe()
    report.ownership = {name: c.ownership() for name, c in collections.items()}
    report.events = [e.to_dict() for e in recorder.events]
    return report
