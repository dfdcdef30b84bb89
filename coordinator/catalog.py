"""Service catalog: descriptors for the downstream services we can route to."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Tuple
import json
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceDescriptor:
    name: str
    endpoint: str
    transport: str = "http"
    capabilities: Tuple[str, ...] = ()
    description: str = ""
    status: str = "active"

    @classmethod
    def from_card(cls, card: Dict[str, Any]) -> "ServiceDescriptor":
        caps = card.get("capabilities") or []
        if isinstance(caps, str):
            caps = [item.strip() for item in caps.split(",")]
        return cls(
            name=str(card["name"]),
            endpoint=str(card.get("endpoint", "")).rstrip("/"),
            transport=str(card.get("transport", "http")).strip().lower(),
            capabilities=tuple(str(item) for item in caps if str(item).strip()),
            description=str(card.get("description", "") or ""),
            status=str(card.get("status", "active") or "active"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "endpoint": self.endpoint,
            "transport": self.transport,
            "capabilities": list(self.capabilities),
            "description": self.description,
            "status": self.status,
        }


@dataclass(frozen=True)
class CatalogSnapshot:
    """Immutable view of the active services, in registration order."""

    entries: Tuple[ServiceDescriptor, ...] = ()
    _by_name: Dict[str, ServiceDescriptor] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        self._by_name.update({entry.name: entry for entry in self.entries})

    def lookup(self, name: str) -> ServiceDescriptor | None:
        return self._by_name.get(name)

    def list_all(self) -> List[ServiceDescriptor]:
        return list(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


class ServiceCatalog:
    """Read-mostly registry of services.

    Cards come from the ``services.cards`` config section and can be extended
    or overridden by a JSON registry file (``{"services": {name: card}}``).
    Registration order is preserved; it is the tie-breaker for fallback
    ranking.
    """

    def __init__(self, cards: List[Dict[str, Any]] | None = None, registry_path: Path | None = None) -> None:
        self.registry_path = registry_path
        self._cards: Dict[str, Dict[str, Any]] = {}
        for card in cards or []:
            if card.get("name"):
                self._cards[str(card["name"])] = dict(card)
        self._load_registry()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "ServiceCatalog":
        path = config.get("registry_path")
        registry_path = Path(path).expanduser() if path else None
        return cls(config.get("cards", []) or [], registry_path)

    def _load_registry(self) -> None:
        if self.registry_path is None or not self.registry_path.exists():
            return
        try:
            data = json.loads(self.registry_path.read_text())
        except (OSError, json.JSONDecodeError):
            logger.warning(f"Failed to load service registry {self.registry_path}", exc_info=True)
            return
        services = data.get("services") if isinstance(data, dict) else None
        if not isinstance(services, dict):
            logger.warning(f"Service registry {self.registry_path} has no \"services\" object; ignoring it")
            return
        for name, stored in services.items():
            if not isinstance(stored, dict):
                continue
            merged = dict(self._cards.get(name, {}))
            merged.update(stored)
            merged["name"] = name
            self._cards[name] = merged

    def _descriptors(self) -> List[ServiceDescriptor]:
        descriptors = []
        for card in self._cards.values():
            try:
                descriptors.append(ServiceDescriptor.from_card(card))
            except KeyError:
                logger.warning(f"Skipping service card without name: {card}")
        return descriptors

    def list_all(self) -> List[ServiceDescriptor]:
        return [entry for entry in self._descriptors() if entry.status == "active"]

    def lookup(self, name: str) -> ServiceDescriptor | None:
        card = self._cards.get(name)
        if not card:
            return None
        return ServiceDescriptor.from_card(card)

    def snapshot(self) -> CatalogSnapshot:
        return CatalogSnapshot(tuple(self.list_all()))
