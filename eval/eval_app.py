"""Behavioural checks for the URL shortener service.

Builds the app against a throwaway database, exercises both routes and
prints a JSON report.

Usage:
    python eval/eval_app.py [--requests N]
"""

import argparse
import json
import re
import sys
import tempfile
import time
from pathlib import Path

from shortener.app import create_app

SHORT_URL = re.compile(r"^Short URL: http://short\.url/([A-Za-z0-9]{6})$")


def record(results: dict, name: str, check) -> None:
    """Run one check and store its outcome under name."""
    try:
        message = check()
        results["tests"][name] = {"pass": True, "category": "correctness", "message": message}
    except Exception as e:
        results["success"] = False
        results["tests"][name] = {"pass": False, "category": "correctness", "message": str(e)}


def post_url(client, long_url: str) -> str:
    response = client.post("/shorten", data={"long_url": long_url})
    if response.status_code != 200:
        raise AssertionError(f"Expected 200, got {response.status_code}")
    match = SHORT_URL.match(response.get_data(as_text=True))
    if not match:
        raise AssertionError(f"Unexpected body: {response.get_data(as_text=True)!r}")
    return match.group(1)


def run_tests(db_path: str, requests: int) -> dict:
    results = {
        "success": True,
        "tests": {},
        "metrics": {},
    }

    try:
        app = create_app({"TESTING": True, "DB_PATH": db_path})
        client = app.test_client()
    except Exception as e:
        results["success"] = False
        results["tests"]["startup_error"] = {
            "pass": False,
            "category": "correctness",
            "message": f"Failed to build app: {e}",
        }
        return results

    store = app.extensions["shortener.store"]

    def start_page():
        response = client.get("/")
        if response.status_code != 200:
            raise AssertionError(f"Expected 200, got {response.status_code}")
        return "Start page renders"

    def basic_shortening():
        code = post_url(client, "http://example.com")
        return f"Shortened to {code}"

    def unique_codes():
        before = store.count()
        codes = [post_url(client, f"http://example.com/{i}") for i in range(requests)]
        if len(set(codes)) != requests:
            raise AssertionError(f"{requests - len(set(codes))} duplicate codes")
        if store.count() - before != requests:
            raise AssertionError(f"Expected {requests} new rows, got {store.count() - before}")
        return f"{requests} requests gave {requests} distinct codes"

    def method_enforced():
        before = store.count()
        response = client.get("/shorten")
        if response.status_code != 405:
            raise AssertionError(f"Expected 405, got {response.status_code}")
        if store.count() != before:
            raise AssertionError("GET /shorten created a mapping")
        return "GET /shorten is rejected"

    def no_deduplication():
        if post_url(client, "http://dup.example") == post_url(client, "http://dup.example"):
            raise AssertionError("Same URL produced the same code twice")
        return "Repeated URLs get fresh codes"

    def empty_input_accepted():
        post_url(client, "")
        return "Empty long_url is stored"

    start = time.time()
    record(results, "test_start_page", start_page)
    record(results, "test_basic_shortening", basic_shortening)
    record(results, "test_unique_codes", unique_codes)
    record(results, "test_method_enforced", method_enforced)
    record(results, "test_no_deduplication", no_deduplication)
    record(results, "test_empty_input_accepted", empty_input_accepted)

    results["metrics"]["rows"] = store.count()
    results["metrics"]["elapsed_seconds"] = round(time.time() - start, 3)
    store.dispose()
    return results


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--requests", type=int, default=100)
    args = parser.parse_args()

    with tempfile.TemporaryDirectory() as tmp:
        results = run_tests(str(Path(tmp) / "urls.db"), args.requests)

    print(json.dumps(results, indent=2))
    sys.exit(0 if results["success"] else 1)


if __name__ == "__main__":
    main()
