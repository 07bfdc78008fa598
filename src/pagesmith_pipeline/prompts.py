"""Fixed prompt text for page transforms."""

from __future__ import annotations

from pagesmith_pipeline.annotator import NODE_ID_ATTR

EDIT_GOAL = f"""\
Generate changes to the web page based on the users message.
Append the users message and a brief response from the AI to the chat panel.
Maintain the full conversation history in the chat panel unless asked to clear it.
Any details or visualizations should be rendered to the viewer panel.
The basic layout structure of the page needs to be maintained.
You're free to write any additional CSS or JavaScript to enhance the page.
Write an explication of your reasoning or any hidden thoughts to the thoughts div.
If the user asks to create something like an app, tool, game, or ui create it in the viewer panel.
If the user asks to draw something use canvas to draw it in the viewer panel.
For animations, games, and presentations add the "full-viewer" class to the viewer-panel \
element and keep content centered using the maximum available space.

IMPORTANT: Each element in the CURRENT_PAGE has a {NODE_ID_ATTR} attribute.
Return a JSON array of change operations to apply to the page. Do NOT return the full HTML page.
Node ids refer to the page as shown. Operations cannot target elements created, removed, \
or rewritten by earlier operations in the same array.

Each operation must be one of:
{{ "op": "update", "nodeId": "<{NODE_ID_ATTR}>", "html": "<new outerHTML>" }}
  replaces the entire element with new markup

{{ "op": "updateContent", "nodeId": "<{NODE_ID_ATTR}>", "html": "<new innerHTML>" }}
  replaces the innerHTML of the target element, keeping its tag and attributes

{{ "op": "delete", "nodeId": "<{NODE_ID_ATTR}>" }}
  removes the element from the page

{{ "op": "insert", "parentId": "<{NODE_ID_ATTR}>", "position": "prepend"|"append"|"before"|"after", \
"html": "<new element HTML>" }}
  inserts new HTML relative to the target element (position defaults to "append")

Inside script and style elements, "updateContent" and inserts that "prepend" or "append" take
plain JavaScript or CSS text, not markup. Void elements such as img or br cannot hold content.

Return ONLY the JSON array. Example:
[
  {{ "op": "updateContent", "nodeId": "5", "html": "<p>Hello world</p>" }},
  {{ "op": "insert", "parentId": "3", "position": "append", "html": "<div class=\\"msg\\">New message</div>" }}
]"""

SERVER_APIS = """\
GET /api/data/:table
description: Retrieve all rows from a table
response: Array of JSON rows [{ id: string, ... }]

GET /api/data/:table/:id
description: Retrieve a single row from a table
response: JSON row { id: string, ... }

POST /api/data/:table
description: Replaces or adds a single row to a table and returns the row
request: JSON row { id?: string, ... }
response: { id: string, ... }

DELETE /api/data/:table/:id
description: Delete a single row from a table
response: { success: true }

POST /api/generate/image
description: Generate an image based on a prompt
request: { prompt: string, shape: 'square' | 'portrait' | 'landscape', style: 'vivid' | 'natural' }
response: { url: string }

POST /api/generate/completion
description: Generates a text completion based on a prompt
request: { prompt: string, temperature?: number }
response: { answer: string, explanation: string }

GET /api/pages
description: Retrieve a list of all pages
response: Array of page names [string]

POST /api/scripts/:id
description: Execute a script with the passed in variables
request: { [key: string]: string }
response: string"""

THEME_SHELL_CLASSES = """\
Shared shell classes (pre-styled by theme, do not redefine):
  .chat-panel: Left sidebar container (30% width)
  .chat-header: Chat panel title bar
  .chat-messages: Scrollable message container
  .chat-message: Individual message wrapper
  .link-group: Navigation links row (Save, Pages, Reset)
  .chat-input: Message text input
  .chat-submit: Send button
  .viewer-panel: Right content area (70% width)
  .loading-overlay: Full-screen loading overlay
  .spinner: Animated loading spinner

Page title bars: To align with the chat header, apply these styles:
  min-height: var(--header-min-height);
  padding: var(--header-padding-vertical) var(--header-padding-horizontal);
  line-height: var(--header-line-height);
  display: flex; align-items: center; justify-content: center; box-sizing: border-box;

Full-viewer mode: For games, animations, or full-screen content, add class "full-viewer" \
to the viewer-panel element to remove its padding."""

_CHANGE_LIST_ONLY = (
    "Return ONLY the JSON array of change operations. "
    "Do not wrap it in markdown code fences or add any other text."
)

MODEL_INSTRUCTIONS: dict[str, str] = {
    "anthropic": _CHANGE_LIST_ONLY,
    "openai": _CHANGE_LIST_ONLY,
    "fireworks": _CHANGE_LIST_ONLY + " Node ids are strings; copy them exactly as shown.",
}


def model_instructions_for(provider: str) -> str:
    """Provider-specific formatting instructions for the change-list response."""
    return MODEL_INSTRUCTIONS.get(provider, _CHANGE_LIST_ONLY)
