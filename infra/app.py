#!/usr/bin/env python3
"""CDK app entrypoint for the LearnHub API infrastructure."""

from __future__ import annotations

import os

import aws_cdk as cdk

from stacks.api_stack import ApiStack
from stacks.data_stack import DataStack

app = cdk.App()

env = cdk.Environment(
    account=os.getenv("CDK_DEFAULT_ACCOUNT"),
    region=os.getenv("CDK_DEFAULT_REGION"),
)


def _context(name: str, env_name: str, default: str = "") -> str:
    return (os.getenv(env_name, "") or app.node.try_get_context(name) or default).strip()


stage_name = _context("stageName", "STAGE_NAME", "dev")
user_pool_id = _context("userPoolId", "USER_POOL_ID")
client_id = _context("clientId", "CLIENT_ID")
client_secret = _context("clientSecret", "CLIENT_SECRET")
claude_api_key = _context("claudeApiKey", "CLAUDE_API_KEY")
anthropic_model = _context("anthropicModel", "ANTHROPIC_MODEL", "claude-3-5-haiku-20241022")
html_conversion_url = _context("htmlConversionUrl", "HTML_CONVERSION_URL")
session_expiry_hours = int(_context("sessionExpiryHours", "SESSION_EXPIRY_HOURS", "24"))

data_stack = DataStack(app, "LearnHubDataStack", env=env)

api_stack = ApiStack(
    app,
    "LearnHubApiStack",
    env=env,
    data_stack=data_stack,
    stage_name=stage_name,
    user_pool_id=user_pool_id,
    client_id=client_id,
    client_secret=client_secret,
    claude_api_key=claude_api_key,
    anthropic_model=anthropic_model,
    html_conversion_url=html_conversion_url,
    session_expiry_hours=session_expiry_hours,
)
api_stack.add_dependency(data_stack)

app.synth()
