"""Turns raw triggers (messages, joins, reports) into one verdict each."""
