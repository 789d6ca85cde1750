import collections
import decimal
import json
import string
import unittest
from abc import ABC, abstractmethod

import quill_lang
from quill_lang.types import ReflectionTypeRegistry, is_constructible


class Shape(ABC):
    @abstractmethod
    def area(self):
        ...


class Square(Shape):
    SIDES = 4

    def __init__(self, side=1):
        self.side = side

    def area(self):
        return self.side * self.side

    @staticmethod
    def unit():
        return Square(1)

    @classmethod
    def of(cls, side):
        return cls(side)

    @property
    def perimeter(self):
        return self.side * 4


class TypeRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = ReflectionTypeRegistry()

    def test_resolve_by_name_walks_nested_attributes(self) -> None:
        self.assertIs(self.registry.resolve_by_name("collections.OrderedDict"), collections.OrderedDict)
        self.assertIs(self.registry.resolve_by_name("json.decoder.JSONDecoder"), json.decoder.JSONDecoder)
        self.assertIs(self.registry.resolve_by_name("decimal.Decimal"), decimal.Decimal)

    def test_resolve_by_name_rejects_modules_private_and_missing(self) -> None:
        for name in ("collections", "collections._Link", "no_such_pkg.Thing", ""):
            with self.subTest(name=name):
                with self.assertRaises(quill_lang.ClassResolutionError):
                    self.registry.resolve_by_name(name)

    def test_members_split_by_binding(self) -> None:
        members = self.registry.members_of(Square)
        self.assertIn("area", members.instance_methods)
        self.assertEqual({"unit", "of"}, set(members.static_methods))
        self.assertIn("perimeter", members.instance_fields)
        self.assertIn("SIDES", members.static_fields)
        self.assertTrue(members.has_static)

    def test_builtin_members(self) -> None:
        members = self.registry.members_of(dict)
        self.assertIn("keys", members.instance_methods)
        self.assertIn("fromkeys", members.static_methods)

    def test_list_under_package_prefers_all(self) -> None:
        classes = self.registry.list_under_package("string")
        self.assertEqual(classes["string.Template"], string.Template)
        self.assertNotIn("string.re", classes)

    def test_list_under_class_lists_nested_types(self) -> None:
        class Outer:
            class Inner:
                pass

        registry = self.registry
        self.assertEqual(registry._nested_classes("x.Outer", Outer), {"x.Outer.Inner": Outer.Inner})

    def test_module_members(self) -> None:
        members = self.registry.module_members("math")
        self.assertIn("sqrt", members.static_methods)
        self.assertIn("pi", members.static_fields)

    def test_is_constructible(self) -> None:
        self.assertFalse(is_constructible(Shape))
        self.assertTrue(is_constructible(Square))
        self.assertFalse(is_constructible(Square()))


class SymbolCatalogTests(unittest.TestCase):
    def test_default_tier(self) -> None:
        catalog = quill_lang.SymbolCatalog()
        self.assertIs(catalog.resolve("OrderedDict"), collections.OrderedDict)
        self.assertIs(catalog.resolve("Decimal"), decimal.Decimal)
        self.assertIs(catalog.resolve("dict"), dict)
        self.assertIsNone(catalog.resolve("Template"))
        self.assertIn("OrderedDict", catalog.constructors())
        self.assertIn("dict", catalog.static_types())

    def test_default_tier_is_shared_and_read_only(self) -> None:
        first = quill_lang.SymbolCatalog()
        second = quill_lang.SymbolCatalog()
        self.assertIs(first._defaults, second._defaults)
        with self.assertRaises(TypeError):
            first._defaults["Nope"] = object

    def test_package_and_type_imports(self) -> None:
        catalog = quill_lang.SymbolCatalog()
        self.assertTrue(catalog.import_package("json"))
        self.assertIs(catalog.resolve("JSONDecoder"), json.JSONDecoder)
        self.assertTrue(catalog.import_type("string.Template"))
        self.assertIs(catalog.resolve("Template"), string.Template)
        self.assertEqual(catalog.imports, ["json.*", "string.Template"])

    def test_unresolved_import_is_dropped(self) -> None:
        catalog = quill_lang.SymbolCatalog()
        with self.assertLogs("quill_lang.catalog", level="DEBUG"):
            self.assertFalse(catalog.import_("no_such_pkg.Thing"))
        self.assertNotIn("Thing", catalog)

    def test_wildcard_removal_rebuilds_from_remaining_imports(self) -> None:
        catalog = quill_lang.SymbolCatalog()
        catalog.import_("json.*")
        catalog.import_("json.JSONEncoder")
        catalog.remove_import("json.*")
        self.assertIsNone(catalog.resolve("JSONDecoder"))
        self.assertIs(catalog.resolve("JSONEncoder"), json.JSONEncoder)

    def test_single_removal_drops_one_entry(self) -> None:
        catalog = quill_lang.SymbolCatalog()
        catalog.import_("string.Template")
        catalog.import_("string.Formatter")
        catalog.remove_import("string.Template")
        self.assertIsNone(catalog.resolve("Template"))
        self.assertIs(catalog.resolve("Formatter"), string.Formatter)

    def test_single_removal_keeps_names_other_imports_provide(self) -> None:
        catalog = quill_lang.SymbolCatalog()
        catalog.import_("string.*")
        catalog.import_("string.Template")
        catalog.remove_import("string.Template")
        self.assertIs(catalog.resolve("Template"), string.Template)
        replayed = dict(catalog.items())
        catalog.rebuild()
        self.assertEqual(replayed, dict(catalog.items()))

    def test_single_removal_falls_back_to_other_type_import(self) -> None:
        catalog = quill_lang.SymbolCatalog()
        catalog.import_("json.JSONDecodeError")
        catalog.import_("json.decoder.JSONDecodeError")
        catalog.import_("json.JSONEncoder")
        catalog.remove_import("json.decoder.JSONDecodeError")
        self.assertIs(catalog.resolve("JSONDecodeError"), json.JSONDecodeError)
        catalog.remove_import("json.JSONEncoder")
        self.assertIsNone(catalog.resolve("JSONEncoder"))

    def test_rebuild_is_idempotent(self) -> None:
        catalog = quill_lang.SymbolCatalog()
        catalog.import_("json.*")
        catalog.import_("string.Template")
        catalog.rebuild()
        first = dict(catalog.items())
        catalog.rebuild()
        self.assertEqual(first, dict(catalog.items()))

    def test_fork_shares_defaults_without_session_imports(self) -> None:
        catalog = quill_lang.SymbolCatalog()
        catalog.import_("json.*")
        forked = catalog.fork()
        self.assertIs(forked.resolve("OrderedDict"), collections.OrderedDict)
        self.assertIsNone(forked.resolve("JSONDecoder"))
        forked.import_("string.Template")
        self.assertIsNone(catalog.resolve("Template"))


if __name__ == "__main__":
    unittest.main(verbosity=2)
