"""Prompt templates for tool and resource selection.

Placeholders use the ``{{name}}`` form and are filled by `render`. Literal
JSON braces in the examples are left alone.
"""

from __future__ import annotations

import re
from typing import Final

_PLACEHOLDER: Final = re.compile(r"\{\{(\w+)\}\}")

TOOL_SELECTION_TEMPLATE: Final = """
User Request:
{{user_message}}

Available MCP servers and tools:
{{provider_text}}

Task:
Pick the single tool that best answers the user request and fill in its arguments
according to the tool's input schema. If no tool fits, say so.

Respond with JSON only, like:
{
  "serverName": "<server_name>",
  "toolName": "<tool_name>",
  "arguments": {},
  "reasoning": "<brief_explanation>"
}

Or if no tool is suitable:
{
  "noToolAvailable": true,
  "reasoning": "<brief_explanation_why_no_tool_is_suitable>"
}
"""

RESOURCE_SELECTION_TEMPLATE: Final = """
User Request:
{{user_message}}

Available MCP resources:
{{resources_description}}

Task:
Pick the single resource whose content best answers the user request. Use the
exact URI listed above. If no resource fits, say so.

Respond with JSON only, like:
{
  "serverName": "<server_name>",
  "uri": "<resource_uri>",
  "reasoning": "<brief_explanation>"
}

Or if no resource is suitable:
{
  "noResourceAvailable": true,
  "reasoning": "<brief_explanation_why_no_resource_is_suitable>"
}
"""

CALCULATOR_TOOL_SELECTION_TEMPLATE: Final = """
User Request:
{{user_message}}

Available Tools:
{{provider_text}}
// Look specifically for the 'calculator' tool description above.

Task:
Analyze the user request. If the request involves a mathematical calculation that the 'calculator' tool can handle, select that tool.
Otherwise, indicate that no specific tool is suitable for this request.

Output Format:
Respond with a JSON object in a markdown code block like this:
```json
{
  "serverName": "<name_of_server_with_calculator>",
  "toolName": "calculator",
  "arguments": {
    "input": "<mathematical_expression_string>"
  },
  "reasoning": "<brief_explanation_for_choosing_calculator>"
}
```

If the calculator tool is NOT suitable for the user's request, respond with:
```json
{
  "noToolAvailable": true,
  "reasoning": "<brief_explanation_why_no_tool_is_suitable>"
}
```

Ensure the "input" argument for the calculator contains only the valid mathematical expression string from the user request.
"""

WEATHER_TOOL_SELECTION_TEMPLATE: Final = """
User Request:
{{user_message}}

Available Tools:
{{provider_text}}
// Look specifically for the 'weather' tool description above.

Task:
Analyze the user request. If the request involves getting weather information for a location, select the weather tool.
Otherwise, indicate that no specific tool is suitable for this request.

Output Format:
Respond with a JSON object in a markdown code block like this:
```json
{
  "serverName": "<name_of_server_with_weather>",
  "toolName": "weather",
  "arguments": {
    "location": "<location_string>"
  },
  "reasoning": "<brief_explanation_for_choosing_weather>"
}
```

If the weather tool is NOT suitable for the user's request, respond with:
```json
{
  "noToolAvailable": true,
  "reasoning": "<brief_explanation_why_no_tool_is_suitable>"
}
```

Ensure the "location" argument for the weather tool contains only the valid location string from the user request.
"""

_TOOL_FEEDBACK_PREAMBLE: Final = """
Your previous tool selection response had errors: {{error_message}}

Previous response:
{{original_response}}
"""

CALCULATOR_TOOL_FEEDBACK_TEMPLATE: Final = _TOOL_FEEDBACK_PREAMBLE + CALCULATOR_TOOL_SELECTION_TEMPLATE

WEATHER_TOOL_FEEDBACK_TEMPLATE: Final = _TOOL_FEEDBACK_PREAMBLE + WEATHER_TOOL_SELECTION_TEMPLATE

GENERIC_TOOL_FEEDBACK_TEMPLATE: Final = """
Your previous tool selection response had errors: {{error_message}}

Previous response:
{{original_response}}

User request: {{user_message}}

Available MCP tools:
{{provider_text}}

Please analyze the user request and select the most appropriate tool, or indicate that no tool is suitable.
Respond with valid JSON (no code block formatting) like:

{
  "serverName": "n8n",
  "toolName": "calculator",
  "arguments": {
    "input": "2+2"
  },
  "reasoning": "The user wants to calculate 2+2"
}

Or if no tool is suitable:

{
  "noToolAvailable": true,
  "reasoning": "The user is asking a general question that doesn't require a specialized tool"
}
"""

RESOURCE_FEEDBACK_TEMPLATE: Final = """
Your previous resource selection response had errors: {{error_message}}

Previous response:
{{original_response}}

User request: {{user_message}}

Available MCP resources:
{{provider_text}}

Please analyze the user request and select the most appropriate resource, or indicate that no resource is suitable.
Respond with valid JSON (no code block formatting or comments) like:

{
  "serverName": "github",
  "uri": "github://elizaos/eliza/README.md",
  "reasoning": "The user wants information about the Eliza project which is in the README"
}

Or if no resource is suitable:

{
  "noResourceAvailable": true,
  "reasoning": "The user is asking a question that doesn't match any available resource"
}
"""


def render(template: str, **values: str) -> str:
    """Fill ``{{name}}`` placeholders; unknown names render as empty strings."""
    return _PLACEHOLDER.sub(lambda match: values.get(match.group(1), ""), template)
