"""Ядро podscope: единый слой доступа к Docker, Podman и Apple container."""

__version__ = "0.1.0"
