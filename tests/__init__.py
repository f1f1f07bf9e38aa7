"""portik Test Suite

Test modules:
    test_model        — Report primary listener, signature, diagnostic dedup
    test_sockets      — ss / lsof parsing and platform selection
    test_enricher     — ps based process metadata
    test_host         — host summary, firewall and virtualization checks
    test_diagnose     — every diagnostic rule plus ordering/dedup
    test_docker_map   — container port mapping via the docker CLI
    test_inspector    — end-to-end inspection with scripted commands
    test_proctree     — ancestry walk and started-by heuristics
    test_port_parser  — port lists, ranges and rejects
    test_scanner      — async batch scan and row building
    test_watch        — change detection loop and wait_for
    test_connections  — per-client connection stats and busiest ports
    test_trace        — ordered ownership explanation steps
    test_history      — history record, dedup, retention and views
    test_patterns     — temporal pattern detection
    test_migrations   — history document upgrades
    test_reporting    — text / JSON rendering
    test_dashboard    — Flask JSON API (test client)
    test_cli          — main.py exit codes and command wiring
    test_utils        — validators, durations, config, logging, shell runner
    test_layering     — static import analysis enforcing package layering

No test shells out to ss/lsof/ps/docker: commands go through FakeRunner
(tests/fakes.py) and host checks through FakeEnv.

Run all tests:
    pytest tests/ -v
"""
