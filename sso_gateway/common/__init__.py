"""Shared HTTP plumbing: exceptions, logging, response envelope."""
