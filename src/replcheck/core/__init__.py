"""Replcheck Core -- errors, outcomes, logging, settings and the MySQL connector.

Architecture::

    errors.py          Structured error hierarchy (ReplCheckError + kinds)
    outcome.py         Operation outcome envelope (Ok / Fail / Info)
    logging.py         structlog configuration + get_logger()
    protocols.py       Session protocol shared by executor and recovery
    adapters/          MySQL connector (mysql-connector-python)
    config/            HarnessSettings (pydantic-settings) + enums
"""
