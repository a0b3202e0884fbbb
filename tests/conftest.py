from pathlib import Path

import pytest

from edge_agent.config import AgentConfig, load_config


@pytest.fixture
def agent_config(tmp_path: Path) -> AgentConfig:
    """Agent configuration with a control channel, loaded from a temp file."""

    config_path = tmp_path / "edge-agent.cfg"
    config_path.write_text(
        "[channels]\ncontrol = ctrl-chan\ndata = data-chan\n", encoding="utf-8"
    )
    return load_config(config_path)
