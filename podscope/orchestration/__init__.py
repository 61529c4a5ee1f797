"""Построение иерархии, статистика и compose поверх адаптеров движка."""
