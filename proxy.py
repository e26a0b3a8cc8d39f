"""Run the fal OpenAI proxy.

    python proxy.py

Bind address comes from configs/config_default.yaml (or FALPROXY_CONFIG),
overridden by FALPROXY_HOST / FALPROXY_PORT.
"""

from falproxy.main import run

if __name__ == "__main__":
    run()
