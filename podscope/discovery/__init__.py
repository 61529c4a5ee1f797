"""Поиск хоста контейнерного движка при старте."""
