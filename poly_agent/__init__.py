# Polymarket Agent - paper trading core
