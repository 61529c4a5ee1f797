"""Шаблон config.json, создаваемого при первом запуске."""

from __future__ import annotations

from typing import Any, Dict

# DEFAULT_CONFIG совпадает с дефолтами групп и дополнен версией схемы
DEFAULT_CONFIG: Dict[str, Any] = {
    "version": "1.0.0",
    "runtime": {
        "preferred": "auto",
        "connection_timeout_sec": 5,
        "ssh_tunnel_timeout_sec": 8,
        "show_all_containers": True,
    },
    "stats": {
        "enabled": True,
        "max_duration_sec": 120,
        "poll_interval_ms": 1000,
    },
    "compose": {
        "command": "",
        "check_compose_config": "{{ .DockerCompose }} config --quiet",
        "list_services": "{{ .DockerCompose }} config --services",
        "view_all_logs": "{{ .DockerCompose }} logs --tail=300 --follow",
        "compose_config": "{{ .DockerCompose }} config",
    },
    "logging": {
        "enabled": True,
        "level": "INFO",
        "max_file_size_mb": 10,
        "max_archived_files": 5,
    },
}
