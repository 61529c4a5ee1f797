"""Адаптеры контейнерных движков и их общий контракт."""
