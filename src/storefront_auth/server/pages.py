"""HTML pages rendered into the login popup by the callback endpoint.

Values are embedded as JSON with ``<``, ``>`` and ``&`` escaped, so nothing
coming back from the authority can break out of the script element.
"""

from __future__ import annotations

import json
from typing import Any

_RESULT_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>{title}</title>
</head>
<body>
  <script>
    (function () {{
      var message = {message};
      var targetOrigin = {target_origin};
      if (window.opener) {{
        window.opener.postMessage(message, targetOrigin);
        window.close();
      }} else {{
        window.location.href = {fallback_url};
      }}
    }})();
  </script>
</body>
</html>
"""

_BOUNCE_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>Processing Authentication...</title>
</head>
<body>
  <script>
    (function () {{
      var targetOrigin = {target_origin};
      var storage = window.opener ? window.opener.sessionStorage : null;
      var storedState = storage ? storage.getItem("oauth_state") : null;
      var codeVerifier = storage ? storage.getItem("oauth_code_verifier") : null;
      if (!storedState || !codeVerifier) {{
        if (window.opener) {{
          window.opener.postMessage(
            {{
              type: "OAUTH_ERROR",
              error: "Missing authentication session. Please try again."
            }},
            targetOrigin
          );
          window.close();
        }}
        return;
      }}
      var url = new URL(window.location.href);
      url.searchParams.set("stored_state", storedState);
      url.searchParams.set("code_verifier", codeVerifier);
      window.location.replace(url.toString());
    }})();
  </script>
</body>
</html>
"""


def script_json(value: Any) -> str:
    """Serialize a value for inclusion inside a <script> element."""
    return (
        json.dumps(value)
        .replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
    )


def render_result_page(
    message: dict[str, Any], target_origin: str, title: str | None = None
) -> str:
    """Page that posts ``message`` to the opener and closes the popup."""
    if title is None:
        success = message.get("type") == "OAUTH_SUCCESS"
        title = "Authentication Successful" if success else "Authentication Error"
    return _RESULT_PAGE.format(
        title=title,
        message=script_json(message),
        target_origin=script_json(target_origin),
        fallback_url=script_json(target_origin),
    )


def render_error_page(error: str, target_origin: str) -> str:
    return render_result_page({"type": "OAUTH_ERROR", "error": error}, target_origin)


def render_bounce_page(target_origin: str) -> str:
    """Page that fetches the verifier and state from the opener and retries."""
    return _BOUNCE_PAGE.format(target_origin=script_json(target_origin))
