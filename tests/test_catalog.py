import json
import tempfile
import unittest
from pathlib import Path

from coordinator.catalog import ServiceCatalog, ServiceDescriptor


class ServiceCatalogTests(unittest.TestCase):
    def setUp(self):
        self.cards = [
            {"name": "alpha", "endpoint": "http://alpha.test/", "capabilities": "user, profile"},
            {"name": "beta", "endpoint": "http://beta.test", "transport": "RPC", "capabilities": ["course"]},
            {"name": "gamma", "endpoint": "http://gamma.test", "status": "inactive"},
            {"endpoint": "http://nameless.test"},
        ]

    def test_from_card_normalizes(self):
        descriptor = ServiceDescriptor.from_card(self.cards[0])
        self.assertEqual(descriptor.endpoint, "http://alpha.test")
        self.assertEqual(descriptor.capabilities, ("user", "profile"))
        self.assertEqual(descriptor.transport, "http")
        self.assertEqual(ServiceDescriptor.from_card(self.cards[1]).transport, "rpc")

    def test_list_all_active_in_registration_order(self):
        catalog = ServiceCatalog(self.cards)
        self.assertEqual([s.name for s in catalog.list_all()], ["alpha", "beta"])
        self.assertIsNone(catalog.lookup("nameless"))
        self.assertEqual(catalog.lookup("gamma").status, "inactive")

    def test_snapshot_is_stable(self):
        catalog = ServiceCatalog(self.cards)
        snapshot = catalog.snapshot()
        catalog._cards["delta"] = {"name": "delta", "endpoint": "http://delta.test"}
        self.assertEqual(len(snapshot), 2)
        self.assertIsNone(snapshot.lookup("delta"))
        self.assertEqual(snapshot.lookup("beta").transport, "rpc")
        self.assertEqual(len(catalog.snapshot()), 3)

    def test_registry_file_overrides_and_extends(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "services.json"
            path.write_text(json.dumps({"services": {
                "beta": {"endpoint": "http://beta-v2.test"},
                "delta": {"endpoint": "http://delta.test", "capabilities": ["report"]},
            }}))
            catalog = ServiceCatalog(self.cards, registry_path=path)
        beta = catalog.lookup("beta")
        self.assertEqual(beta.endpoint, "http://beta-v2.test")
        self.assertEqual(beta.transport, "rpc")
        self.assertEqual([s.name for s in catalog.list_all()], ["alpha", "beta", "delta"])

    def test_bad_registry_file_is_ignored(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "services.json"
            path.write_text("{broken")
            catalog = ServiceCatalog(self.cards, registry_path=path)
        self.assertEqual(len(catalog.list_all()), 2)

    def test_registry_file_with_wrong_shape_is_ignored(self):
        for text in ("[1, 2]", "42", '{"services": ["beta"]}', "null"):
            with tempfile.TemporaryDirectory() as tmp:
                path = Path(tmp) / "services.json"
                path.write_text(text)
                catalog = ServiceCatalog(self.cards, registry_path=path)
            self.assertEqual([s.name for s in catalog.list_all()], ["alpha", "beta"], text)

    def test_from_config_expands_path(self):
        catalog = ServiceCatalog.from_config({"cards": self.cards, "registry_path": "~/does-not-exist.json"})
        self.assertFalse(str(catalog.registry_path).startswith("~"))


if __name__ == "__main__":
    unittest.main()
