"""Data infrastructure stack for the learning-management tables and uploads bucket."""

from __future__ import annotations

from aws_cdk import CfnOutput, RemovalPolicy, Stack
from aws_cdk import aws_dynamodb as dynamodb
from aws_cdk import aws_s3 as s3
from constructs import Construct

# env var name -> (construct id, partition key, [(index name, hash key, range key)])
TABLE_LAYOUT: dict[str, tuple[str, str, list[tuple[str, str, str | None]]]] = {
    "COURSES_TABLE": (
        "CoursesTable",
        "course_id",
        [("standardId-index", "standard_id", None), ("syllabusId-index", "syllabus_id", None)],
    ),
    "SUBJECTS_TABLE": (
        "SubjectsTable",
        "subject_id",
        [("standardId-index", "standard_id", None), ("courseId-index", "course_id", None)],
    ),
    "CHAPTERS_TABLE": ("ChaptersTable", "chapter_id", [("subjectId-index", "subject_id", None)]),
    "SECTIONS_TABLE": (
        "SectionsTable",
        "section_id",
        [("chapterId-index", "chapter_id", None), ("subjectId-index", "subject_id", None)],
    ),
    "ASSIGNMENTS_TABLE": (
        "AssignmentsTable",
        "assignment_id",
        [("courseId-index", "course_id", None), ("subjectId-index", "subject_id", None)],
    ),
    "COURSE_BUNDLES_TABLE": ("CourseBundlesTable", "bundle_id", []),
    "QUESTIONS_TABLE": (
        "QuestionsTable",
        "question_id",
        [("subjectId-index", "subject_id", None), ("chapterId-index", "chapter_id", None)],
    ),
    "OPTIONS_TABLE": ("QuestionOptionsTable", "option_id", [("questionId-index", "question_id", None)]),
    "RESULTS_TABLE": (
        "ResultsTable",
        "result_id",
        [
            ("examId-index", "exam_id", None),
            ("userId-index", "user_id", None),
            ("userExam-index", "user_id", "exam_id"),
        ],
    ),
    "MATERIALS_TABLE": (
        "MaterialsTable",
        "material_id",
        [("courseId-index", "course_id", None), ("sectionId-index", "section_id", None)],
    ),
    "MATERIAL_TAGS_TABLE": ("MaterialTagsTable", "tag_id", []),
    "SESSIONS_TABLE": ("SessionsTable", "session_id", [("userId-index", "user_id", "created_at")]),
    "USERS_TABLE": ("UsersTable", "user_id", []),
    "STANDARDS_TABLE": ("StandardsTable", "standard_id", [("courseId-index", "course_id", None)]),
    "SYLLABUS_TABLE": ("SyllabusTable", "syllabus_id", []),
    "AUDIT_LOGS_TABLE": (
        "AuditLogsTable",
        "log_id",
        [
            ("userId-timestamp-index", "user_id", "timestamp"),
            ("module-timestamp-index", "module", "timestamp"),
        ],
    ),
}


def _string_attribute(name: str) -> dynamodb.Attribute:
    return dynamodb.Attribute(name=name, type=dynamodb.AttributeType.STRING)


class DataStack(Stack):
    """Owns S3 and DynamoDB resources used by the API stack."""

    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        self.uploads_bucket = s3.Bucket(
            self,
            "UploadsBucket",
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            auto_delete_objects=True,
            removal_policy=RemovalPolicy.DESTROY,
            cors=[
                s3.CorsRule(
                    allowed_methods=[s3.HttpMethods.PUT, s3.HttpMethods.GET],
                    allowed_origins=["*"],
                    allowed_headers=["*"],
                )
            ],
        )

        self.tables: dict[str, dynamodb.Table] = {}
        for env_name, (table_id, partition_key, indexes) in TABLE_LAYOUT.items():
            table = dynamodb.Table(
                self,
                table_id,
                partition_key=_string_attribute(partition_key),
                billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
                removal_policy=RemovalPolicy.DESTROY,
                time_to_live_attribute="ttl" if env_name == "AUDIT_LOGS_TABLE" else None,
            )
            for index_name, hash_key, range_key in indexes:
                table.add_global_secondary_index(
                    index_name=index_name,
                    partition_key=_string_attribute(hash_key),
                    sort_key=_string_attribute(range_key) if range_key else None,
                    projection_type=dynamodb.ProjectionType.ALL,
                )
            self.tables[env_name] = table

        CfnOutput(
            self,
            "UploadsBucketName",
            value=self.uploads_bucket.bucket_name,
            description="Uploads bucket name",
        )
        for env_name, table in self.tables.items():
            CfnOutput(
                self,
                f"{TABLE_LAYOUT[env_name][0]}Name",
                value=table.table_name,
                description=f"Table name for {env_name}",
            )
