"""Application layer.

Wires the job engine for a front end (terminal UI, headless runner, tests).

Rule of thumb:
UI -> application.container -> core.jobs / services
"""
