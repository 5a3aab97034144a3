"""Shared pytest fixtures for the Mockup Sync test suite.

Provides reusable fixtures for:
- Temporary project trees with a mockup root
- A Config pointing at the temporary project
- Sample mockups (markup, style, data, variants, image-only)
- Helpers to write mockups and to snapshot a directory tree
"""

from __future__ import annotations

import json
import textwrap
from pathlib import Path
from typing import Any

import pytest

from src.config import Config
from src.utils import set_quiet


CHECKOUT_HTML = textwrap.dedent("""\
    <!DOCTYPE html>
    <html>
      <head>
        <title>Checkout</title>
        <link rel="stylesheet" href="checkout.css">
        <script>console.log("ignored");</script>
      </head>
      <body>
        <main class="checkout">
          <h1>Checkout</h1>
          <form>
            <label for="card">Card number</label>
            <input id="card" name="card" required>
            <button type="submit" onclick="pay()">Pay now</button>
          </form>
          <ul>
            <li>Item one
            <li>Item two
          </ul>
        </main>
      </body>
    </html>
""")

CHECKOUT_DATA: dict[str, Any] = {
    "title": "Checkout",
    "endpoints": [
        {"name": "get cart", "method": "GET", "path": "/cart"},
        {"name": "submitOrder", "method": "POST", "path": "/orders", "description": "Place the order"},
        {"name": "order status", "path": "/orders/{order_id}"},
    ],
}

CART_HTML = "<section class=\"cart\"><h1>Your cart</h1><p>Nothing here yet.</p></section>\n"

CHECKOUT_MOBILE_HTML = "<main class=\"checkout mobile\"><h1>Checkout</h1><button>Pay</button></main>\n"


# ---------------------------------------------------------------------------
# Console
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def quiet_console():
    """Keep Rich output out of the test log."""
    set_quiet(True)
    yield
    set_quiet(False)


@pytest.fixture(autouse=True)
def no_api_override(monkeypatch):
    """Tests opt in to the API base URL override explicitly."""
    monkeypatch.delenv("MOCKSYNC_API_BASE_URL", raising=False)
    monkeypatch.delenv("MOCKSYNC_ALLOW_UPDATE", raising=False)
    monkeypatch.delenv("MOCKSYNC_CONFIG", raising=False)


# ---------------------------------------------------------------------------
# Paths & Config
# ---------------------------------------------------------------------------

@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Temporary project root with an empty mockup tree."""
    root = tmp_path / "project"
    (root / "design" / "mockups").mkdir(parents=True)
    yield root


@pytest.fixture
def config(project: Path) -> Config:
    """Config rooted at the temporary project."""
    return Config(project_root=project)


@pytest.fixture
def mockups(config: Config) -> Path:
    """The mockup root of the temporary project."""
    return config.mockup_path


def write_mockup(root: Path, rel: str, content: str | bytes) -> Path:
    """Write one mockup file, creating directories as needed."""
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")
    return path


def snapshot(root: Path) -> dict[str, bytes]:
    """Every file under *root* keyed by POSIX relative path."""
    if not root.exists():
        return {}
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


@pytest.fixture
def sample_mockups(mockups: Path) -> Path:
    """checkout (markup + style + data), checkout-mobile, cart."""
    write_mockup(mockups, "checkout.html", CHECKOUT_HTML)
    write_mockup(mockups, "checkout.css", ".checkout { color: red; }\n")
    write_mockup(mockups, "checkout.json", json.dumps(CHECKOUT_DATA, indent=2))
    write_mockup(mockups, "checkout-mobile.html", CHECKOUT_MOBILE_HTML)
    write_mockup(mockups, "cart.html", CART_HTML)
    return mockups
