from __future__ import annotations

import pytest

from mcplink.mcp.capabilities import (
    CALCULATOR_TEMPLATE,
    CALCULATOR_URI,
    WEATHER_URI_TEMPLATE,
    fetch_capabilities,
    is_n8n_url,
    synthesize_capabilities,
)
from mcplink.mcp.errors import MethodNotSupportedError
from mcplink.mcp.models import ResourceTemplateDescriptor
from tests.support.mcp_fakes import FakeClient, FakeTransport, ServerBehavior, resource, tool


async def _client(behavior: ServerBehavior) -> FakeClient:
    client = FakeClient({"alpha": behavior}, [])
    await client.connect(FakeTransport("alpha"))
    return client


@pytest.mark.asyncio
async def test_fetch_capabilities_returns_all_lists() -> None:
    template = ResourceTemplateDescriptor(uri_template="file:///{path}", name="Files")
    client = await _client(
        ServerBehavior(
            tools=[tool("search")],
            resources=[resource("file:///readme.md")],
            templates=[template],
        )
    )

    fetched = await fetch_capabilities("alpha", client)

    assert [item.name for item in fetched.tools] == ["search"]
    assert [item.uri for item in fetched.resources] == ["file:///readme.md"]
    assert fetched.resource_templates == [template]


@pytest.mark.asyncio
async def test_fetch_capabilities_treats_failures_as_empty_lists() -> None:
    client = await _client(
        ServerBehavior(
            tools_error=RuntimeError("tools offline"),
            resources_error=MethodNotSupportedError("resources/list"),
            templates_error=ConnectionError("reset"),
        )
    )

    fetched = await fetch_capabilities("alpha", client)

    assert fetched.tools == []
    assert fetched.resources == []
    assert fetched.resource_templates == []


def test_calculator_tool_yields_fixed_uri_resource_and_template() -> None:
    result = synthesize_capabilities("n8n", [tool("calculator")], [], [])

    assert [item.uri for item in result.resources] == [CALCULATOR_URI]
    assert result.resources[0].synthetic is True
    assert result.resources[0].name == "Calculator Resource"
    assert result.resource_templates == [CALCULATOR_TEMPLATE]


def test_weather_tool_yields_fixed_template_uri() -> None:
    real = [resource("file:///readme.md")]

    result = synthesize_capabilities("n8n", [tool("weather")], real, [])

    assert [item.uri for item in result.resources] == ["file:///readme.md", WEATHER_URI_TEMPLATE]
    assert [item.uri_template for item in result.resource_templates] == [WEATHER_URI_TEMPLATE]
    assert result.resources[0].description.startswith("Retrieves current weather")


def test_zero_real_resources_falls_back_to_generic_wrappers() -> None:
    tools = [tool("search", "Search the web"), tool("translate")]

    result = synthesize_capabilities("alpha", tools, [], [])

    assert [item.uri for item in result.resources] == [
        "mcp://alpha/synthetic/tool/search",
        "mcp://alpha/synthetic/tool/translate",
    ]
    assert [item.name for item in result.resources] == ["Search Tool", "Translate Tool"]
    assert result.resources[0].description == "Search the web"
    assert result.resources[1].description == "Access the translate functionality"
    assert [item.name for item in result.resource_templates] == [
        "Search Template",
        "Translate Template",
    ]
    assert result.resource_templates[0].input_schema == tools[0].input_schema
    assert result.resource_templates[0].output_schema == tools[0].output_schema


def test_real_resources_suppress_generic_wrappers_but_keep_specials() -> None:
    real = [resource("file:///readme.md", "Readme")]

    result = synthesize_capabilities("alpha", [tool("search"), tool("calculator")], real, [])

    assert [item.uri for item in result.resources] == ["file:///readme.md", CALCULATOR_URI]


def test_weather_gets_generic_pair_alongside_special_without_real_resources() -> None:
    result = synthesize_capabilities("s", [tool("weather"), tool("search")], [], [])

    assert [item.uri for item in result.resources] == [
        WEATHER_URI_TEMPLATE,
        "mcp://s/synthetic/tool/weather",
        "mcp://s/synthetic/tool/search",
    ]
    assert [item.uri_template for item in result.resource_templates] == [
        WEATHER_URI_TEMPLATE,
        "mcp://s/synthetic/tool-template/weather",
        "mcp://s/synthetic/tool-template/search",
    ]


def test_n8n_host_always_gets_generic_wrappers() -> None:
    real = [resource("file:///readme.md")]

    result = synthesize_capabilities(
        "n8n", [tool("search"), tool("weather")], real, [], n8n_host=True
    )

    assert [item.uri for item in result.resources] == [
        "file:///readme.md",
        WEATHER_URI_TEMPLATE,
        "mcp://n8n/synthetic/tool/search",
        "mcp://n8n/synthetic/tool/weather",
    ]


def test_synthesis_skips_uris_already_reported_by_the_server() -> None:
    real = [resource("mcp://alpha/synthetic/tool/search", "Already there")]
    templates = [ResourceTemplateDescriptor(uri_template=CALCULATOR_URI, name="Server calc")]

    result = synthesize_capabilities(
        "alpha",
        [tool("search"), tool("calculator")],
        real,
        templates,
        n8n_host=True,
    )

    assert [item.uri for item in result.resources] == [
        "mcp://alpha/synthetic/tool/search",
        CALCULATOR_URI,
    ]
    assert result.resources[0].name == "Already there"
    assert [item.name for item in result.resource_templates] == [
        "Server calc",
        "Search Template",
    ]


def test_duplicate_calculator_tools_produce_one_resource() -> None:
    result = synthesize_capabilities("n8n", [tool("calculator"), tool("calculator")], [], [])

    assert [item.uri for item in result.resources].count(CALCULATOR_URI) == 1


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://acme.app.n8n.cloud/mcp/sse", True),
        ("https://docs.n8n.io/mcp", True),
        ("http://localhost:5678/sse", False),
        (None, False),
    ],
)
def test_is_n8n_url(url: str | None, expected: bool) -> None:
    assert is_n8n_url(url) is expected
