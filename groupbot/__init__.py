"""Group chat bot building blocks: reminders, cron clock, MIDI notes, a marriage game and helpers."""

__version__ = "0.1.0"