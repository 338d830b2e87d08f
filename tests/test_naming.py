import re
import threading

import pytest

from toolcall_engine.engine_core.tools import NameMapping, ToolDefinition, adapt_tools, find_tool, sanitize_tool_name
from toolcall_engine.engine_core.tools.naming import matches_tool

VALID = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,63}$")


@pytest.mark.parametrize(
    "name, expected",
    [
        ("api_123e4567-e89b__dn_list_items", "dn_list_items"),
        ("list-items.v2", "list_items_v2"),
        ("9lives", "tool_9lives"),
        ("", "unnamed_tool"),
        (None, "unnamed_tool"),
        ("already_fine", "already_fine"),
    ],
)
def test_sanitize_tool_name(name, expected):
    assert sanitize_tool_name(name) == expected


@pytest.mark.parametrize("name", ["x" * 200, "1" * 80, "ns__" + "-" * 70, "a__b__c", "ünïcødé tool"])
def test_sanitized_names_are_always_provider_safe(name):
    assert VALID.match(sanitize_tool_name(name))


def test_long_name_keeps_suffix():
    name = "prefix_" + "a" * 60 + "_suffix"
    sanitized = sanitize_tool_name(name)
    assert len(sanitized) == 64
    assert sanitized.endswith("_suffix")


def test_mapping_round_trip_and_identity_fallback():
    mapping = NameMapping()
    sanitized = mapping.sanitize("api_1__dn_get-item")
    assert sanitized == "dn_get_item"
    assert mapping.resolve(sanitized) == "api_1__dn_get-item"
    assert mapping.resolve("never_seen") == "never_seen"


def test_mappings_are_independent_per_request():
    first, second = NameMapping(), NameMapping()
    first.sanitize("ns_a__tool")
    second.sanitize("ns_b__tool")
    assert first.resolve("tool") == "ns_a__tool"
    assert second.resolve("tool") == "ns_b__tool"


def test_collision_keeps_first_and_hides_second():
    mapping = NameMapping()
    tools = [
        ToolDefinition(name="svc_a__lookup", description="A"),
        ToolDefinition(name="svc_b__lookup", description="B"),
    ]
    adapted = adapt_tools(tools, mapping)
    assert [t.name for t in adapted] == ["lookup"]
    assert adapted[0].description == "A"
    assert mapping.resolve("lookup") == "svc_a__lookup"


def test_adapt_tools_defaults_description_and_normalizes_schema():
    mapping = NameMapping()
    tool = ToolDefinition(
        name="ns__things",
        description="",
        parameters={"$schema": "x", "properties": {"ids": {"type": "array"}}, "required": ["ids", "ghost"]},
    )
    [adapted] = adapt_tools([tool], mapping)
    assert adapted.description == "No description provided"
    assert adapted.parameters == {
        "type": "object",
        "properties": {"ids": {"type": "array", "items": {"type": "string"}}},
        "required": ["ids"],
    }
    # the backend definition is left as declared
    assert "$schema" in tool.parameters


def test_mapping_is_thread_safe():
    mapping = NameMapping()

    def work(offset):
        for i in range(200):
            mapping.sanitize(f"ns{offset}__tool_{i}")

    threads = [threading.Thread(target=work, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert len(mapping) == 200


def test_find_tool_matches_namespaced_names(search_tool):
    assert find_tool("api_7f3a__search_items", [search_tool]) is search_tool
    assert find_tool("search_items", [search_tool]) is search_tool
    assert find_tool("other__search_items", [search_tool]) is search_tool
    assert find_tool("missing", [search_tool]) is None


def test_matches_tool_checks_core_name():
    assert matches_tool(["search_*"], "api_1__search_items")
    assert not matches_tool(["get_*"], "api_1__search_items")
