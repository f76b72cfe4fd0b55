#!/usr/bin/env uv run
# /// script
# requires-python = ">=3.9"
# dependencies = [
#     "sockhttp",
# ]
#
# [tool.uv.sources]
# sockhttp = { path = "../", editable = true }
# ///

import logging
import sqlite3

from sockhttp import CacheConfig, ClientConfig, ServiceClient, SQLiteStorage

logging.basicConfig(level=logging.DEBUG)

config = ClientConfig(
    endpoint="https://httpbin.org",
    user_agent="sockhttp-example/1.0",
    timeout=10,
    cache=CacheConfig(expiration=60),
)

with ServiceClient(config, storage=SQLiteStorage(connection=sqlite3.connect(":memory:"))) as client:
    exchanges = client.call_many([{"action": "/get", "data": {"page": page}} for page in range(5)])
    for exchange in exchanges:
        if exchange.ok:
            print(exchange.request.data, exchange.response.status_code, exchange.response.value["args"])
        else:
            print(exchange.request.data, "failed:", exchange.failure.error)

    # Served from the cache, no connection is opened.
    request, response = client.call_json("/get", data={"page": 0})
    print(response.from_cache, response.metadata)
