"""Shared constants for taskchain."""

import re

# Slugs end up in file names, keep them path-safe
SLUG_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_-]*$')

TASK_ID_PATTERN = re.compile(r'^(\d{3})-(.+)$')
CHAIN_ID_PATTERN = re.compile(r'^CHAIN-(\d{3})-(.+)$')

DEFAULT_TASKS_PATH = "docs/tasks"
CHAINS_DIR = ".chains"
SEQUENCES_FILE = "sequences.json"
CONFIG_FILE = "taskchain.env"
