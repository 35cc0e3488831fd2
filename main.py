"""
Console Test Harness for the form engine

Walks a form in the terminal through the Flask test client, so the full
load -> resolve -> handle flow (redirects, flash errors, save and exit)
runs without a browser.

Usage:
    python main.py tax-form
"""

import logging
import sys

from app import create_app
from form_engine.config import EngineConfig
from form_engine.persistence import FileSessionPersistence

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"quit", "exit", "stop"}
SAVE_COMMAND = "save"


def print_separator(char="=", length=60):
    """Print a separator line"""
    print(char * length)


def follow(client, response):
    """Follow redirects, returning the final response and its path"""
    path = None
    while response.status_code in (301, 302, 303):
        path = response.headers["Location"]
        response = client.get(path)
    return response, path


def main(argv=None):
    """Run console walk-through"""
    argv = sys.argv[1:] if argv is None else argv
    slug = argv[0] if argv else "tax-form"

    persistence = FileSessionPersistence()
    app = create_app(EngineConfig.from_env(), persistence.as_strategy())
    client = app.test_client()

    print_separator()
    print(f"FORM ENGINE - CONSOLE WALK-THROUGH ({slug})")
    print_separator()
    print(f"Type one of {sorted(EXIT_COMMANDS)} to stop, '{SAVE_COMMAND}' to save and exit\n")

    response, path = follow(client, client.get(f"/{slug}"))

    while True:
        body = response.get_json() or {}

        if not body.get("success"):
            print(f"\nERROR: {body.get('error', response.status_code)}")
            return 1

        if "page" not in body:
            print(f"\n{body.get('pageTitle', 'Done')}")
            return 0

        page = body["page"]
        print_separator("-")
        print(page["title"])
        print(f"[{page['page_path']}, reference {page['reference_number']}]")

        for error in page["errors"]:
            print(f"  ! {error['text']}")

        if page["page_path"].endswith("/status"):
            print(page["data"].get("submissionGuidance") or "")
            return 0

        payload = {"action": "continue"}

        if page["components"]:
            for name in page["components"]:
                answer = input(f"{name}> ").strip()
                if answer.lower() in EXIT_COMMANDS:
                    print("\nStopped by user")
                    return 0
                if answer.lower() == SAVE_COMMAND:
                    payload["action"] = "save-and-exit"
                    break
                payload[name] = answer
        else:
            for name, value in page["values"].items():
                print(f"  {name}: {value}")
            if input("Submit? (y/n) ").strip().lower() != "y":
                return 0

        response, path = follow(client, client.post(path, data=payload))


if __name__ == '__main__':
    sys.exit(main())
