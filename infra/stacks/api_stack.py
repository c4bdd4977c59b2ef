"""API infrastructure stack for Lambda + API Gateway wiring."""

from __future__ import annotations

from pathlib import Path

from aws_cdk import BundlingOptions, CfnOutput, Duration, Stack
from aws_cdk import aws_apigateway as apigateway
from aws_cdk import aws_iam as iam
from aws_cdk import aws_lambda as lambda_
from constructs import Construct

from stacks.data_stack import DataStack

CORS_ALLOW_HEADERS = "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token"
CORS_ALLOW_METHODS = "OPTIONS,POST,GET,PUT,DELETE"


class ApiStack(Stack):
    """Owns API Gateway and the single Lambda serving every learning-management route."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        data_stack: DataStack,
        stage_name: str,
        user_pool_id: str,
        client_id: str,
        client_secret: str,
        claude_api_key: str,
        anthropic_model: str,
        html_conversion_url: str,
        session_expiry_hours: int,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        project_root = Path(__file__).resolve().parents[2]
        lambda_code = lambda_.Code.from_asset(
            str(project_root),
            exclude=[
                ".git",
                ".github",
                "infra",
                "cdk.out",
                "__pycache__",
                "tests",
                "docs",
            ],
            bundling=BundlingOptions(
                image=lambda_.Runtime.PYTHON_3_12.bundling_image,
                command=[
                    "bash",
                    "-c",
                    "pip install --no-cache-dir . -t /asset-output",
                ],
            ),
        )

        env = {
            env_name: table.table_name for env_name, table in data_stack.tables.items()
        }
        env.update(
            {
                "S3_UPLOAD_BUCKET": data_stack.uploads_bucket.bucket_name,
                "USER_POOL_ID": user_pool_id,
                "CLIENT_ID": client_id,
                "CLIENT_SECRET": client_secret,
                "CLAUDE_API_KEY": claude_api_key,
                "ANTHROPIC_MODEL": anthropic_model,
                "HTML_CONVERSION_URL": html_conversion_url,
                "SESSION_EXPIRY_HOURS": str(session_expiry_hours),
                "CORS_ALLOW_METHODS": CORS_ALLOW_METHODS,
            }
        )

        app_api_handler = lambda_.Function(
            self,
            "AppApiHandler",
            runtime=lambda_.Runtime.PYTHON_3_12,
            code=lambda_code,
            handler="backend.runtime.lambda_handler",
            timeout=Duration.seconds(29),
            memory_size=512,
            environment=env,
        )

        for table in data_stack.tables.values():
            table.grant_read_write_data(app_api_handler)
        data_stack.uploads_bucket.grant_read_write(app_api_handler)
        if user_pool_id:
            app_api_handler.add_to_role_policy(
                iam.PolicyStatement(
                    actions=[
                        "cognito-idp:AdminGetUser",
                        "cognito-idp:AdminSetUserPassword",
                        "cognito-idp:AdminUserGlobalSignOut",
                    ],
                    resources=[
                        f"arn:aws:cognito-idp:{self.region}:{self.account}:userpool/{user_pool_id}"
                    ],
                )
            )

        self.rest_api = apigateway.RestApi(
            self,
            "LearnHubApi",
            rest_api_name="learnhub-api",
            deploy_options=apigateway.StageOptions(stage_name=stage_name),
            default_cors_preflight_options=apigateway.CorsOptions(
                allow_origins=apigateway.Cors.ALL_ORIGINS,
                allow_methods=CORS_ALLOW_METHODS.split(","),
                allow_headers=CORS_ALLOW_HEADERS.split(","),
            ),
        )
        for response_id, response_type in (
            ("Default4xxCors", apigateway.ResponseType.DEFAULT_4_XX),
            ("Default5xxCors", apigateway.ResponseType.DEFAULT_5_XX),
        ):
            self.rest_api.add_gateway_response(
                response_id,
                type=response_type,
                response_headers={
                    "Access-Control-Allow-Origin": "'*'",
                    "Access-Control-Allow-Headers": f"'{CORS_ALLOW_HEADERS}'",
                    "Access-Control-Allow-Methods": f"'{CORS_ALLOW_METHODS}'",
                },
            )

        app_integration = apigateway.LambdaIntegration(app_api_handler)
        self.rest_api.root.add_method("ANY", app_integration)
        self.rest_api.root.add_resource("{proxy+}").add_method("ANY", app_integration)

        api_base_url = self.rest_api.url.rstrip("/")
        CfnOutput(
            self,
            "ApiBaseUrl",
            value=api_base_url,
            description="Base URL for smoke tests and frontend API wiring",
        )
        CfnOutput(
            self,
            "HealthEndpoint",
            value=f"{api_base_url}/health",
            description="Unauthenticated liveness check",
        )
