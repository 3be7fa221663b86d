"""HTTP plumbing shared by every router: envelopes, error handlers, request ids."""

from api.base import APIResponse, ErrorCodes, error_response, success_response
