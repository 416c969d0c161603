"""Infrastructure: external tools, REST clients, persistence and report files."""
