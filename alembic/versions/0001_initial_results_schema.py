"""Initial results schema.

Revision ID: 0001_initial_results_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial_results_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# Enum types are created once up front and shared between tables
curriculum = postgresql.ENUM('O_LEVEL', 'A_LEVEL', name='curriculum', create_type=False)
educationlevel = postgresql.ENUM('O_LEVEL', 'A_LEVEL', 'BOTH', name='educationlevel', create_type=False)
combinationrole = postgresql.ENUM('PRINCIPAL', 'SUBSIDIARY', name='combinationrole', create_type=False)
resultmodel = postgresql.ENUM('O_LEVEL', 'A_LEVEL', name='resultmodel', create_type=False)
changetype = postgresql.ENUM('CREATE', 'UPDATE', 'DELETE', name='changetype', create_type=False)

ENUMS = (curriculum, educationlevel, combinationrole, resultmodel, changetype)


def timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def result_columns() -> list[sa.Column]:
    return [
        sa.Column('id', sa.BigInteger(), autoincrement=True, primary_key=True),
        sa.Column('student_id', sa.BigInteger(), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('subject_id', sa.BigInteger(), sa.ForeignKey('subjects.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('exam_id', sa.BigInteger(), sa.ForeignKey('exams.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('class_id', sa.BigInteger(), sa.ForeignKey('school_classes.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('marks_obtained', sa.DECIMAL(5, 2), nullable=False),
        sa.Column('grade', sa.String(2), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('flagged_ineligible', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('version', sa.Integer(), nullable=False),
        *timestamps(),
    ]


def upgrade() -> None:
    """Create reference data, result, ledger and policy tables."""
    bind = op.get_bind()
    for enum in ENUMS:
        enum.create(bind, checkfirst=True)

    op.create_table(
        'subjects',
        sa.Column('id', sa.BigInteger(), autoincrement=True, primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('education_level', educationlevel, nullable=False),
        sa.Column('is_compulsory', sa.Boolean(), nullable=False, server_default=sa.false()),
        *timestamps(),
    )
    op.create_index('ix_subjects_code', 'subjects', ['code'], unique=True)

    op.create_table(
        'subject_combinations',
        sa.Column('id', sa.BigInteger(), autoincrement=True, primary_key=True),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *timestamps(),
    )
    op.create_index('ix_subject_combinations_code', 'subject_combinations', ['code'], unique=True)

    op.create_table(
        'combination_subjects',
        sa.Column('combination_id', sa.BigInteger(), sa.ForeignKey('subject_combinations.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('subject_id', sa.BigInteger(), sa.ForeignKey('subjects.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('role', combinationrole, nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table(
        'school_classes',
        sa.Column('id', sa.BigInteger(), autoincrement=True, primary_key=True),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('section', sa.String(50), nullable=True),
        sa.Column('education_level', curriculum, nullable=False),
        sa.Column('form', sa.Integer(), nullable=False),
        *timestamps(),
    )

    op.create_table(
        'class_subjects',
        sa.Column('class_id', sa.BigInteger(), sa.ForeignKey('school_classes.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('subject_id', sa.BigInteger(), sa.ForeignKey('subjects.id', ondelete='CASCADE'), primary_key=True),
    )

    op.create_table(
        'students',
        sa.Column('id', sa.BigInteger(), autoincrement=True, primary_key=True),
        sa.Column('admission_number', sa.String(50), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('middle_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('education_level', curriculum, nullable=False),
        sa.Column('form', sa.Integer(), nullable=False),
        sa.Column('class_id', sa.BigInteger(), sa.ForeignKey('school_classes.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('subject_combination_id', sa.BigInteger(), sa.ForeignKey('subject_combinations.id', ondelete='SET NULL'), nullable=True),
        *timestamps(),
    )
    op.create_index('ix_students_admission_number', 'students', ['admission_number'], unique=True)
    op.create_index('ix_students_class_id', 'students', ['class_id'])
    op.create_index('ix_students_subject_combination_id', 'students', ['subject_combination_id'])

    op.create_table(
        'exams',
        sa.Column('id', sa.BigInteger(), autoincrement=True, primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('term', sa.String(50), nullable=False),
        sa.Column('academic_year', sa.String(20), nullable=False),
        sa.Column('exam_type', sa.String(50), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        *timestamps(),
    )
    op.create_index('ix_exams_name', 'exams', ['name'])
    op.create_index('ix_exams_academic_year', 'exams', ['academic_year'])

    op.create_table(
        'o_level_results',
        *result_columns(),
        sa.UniqueConstraint('student_id', 'subject_id', 'exam_id', name='uq_o_level_result_key'),
    )

    op.create_table(
        'a_level_results',
        *result_columns(),
        sa.Column('is_principal', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint('student_id', 'subject_id', 'exam_id', name='uq_a_level_result_key'),
    )

    op.create_table(
        'marks_history',
        sa.Column('id', sa.BigInteger(), autoincrement=True, primary_key=True),
        sa.Column('result_id', sa.BigInteger(), nullable=False, index=True),
        sa.Column('result_model', resultmodel, nullable=False, index=True),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.BigInteger(), nullable=False, index=True),
        sa.Column('subject_id', sa.BigInteger(), nullable=False, index=True),
        sa.Column('exam_id', sa.BigInteger(), nullable=False, index=True),
        sa.Column('class_id', sa.BigInteger(), nullable=True, index=True),
        sa.Column('change_type', changetype, nullable=False, index=True),
        sa.Column('previous_values', postgresql.JSONB(), nullable=True),
        sa.Column('new_values', postgresql.JSONB(), nullable=True),
        sa.Column('user_id', sa.BigInteger(), nullable=True, index=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('reverted_from_id', sa.BigInteger(), nullable=True),
        sa.Column('ip_address', sa.String(50), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
        sa.UniqueConstraint('result_model', 'result_id', 'sequence', name='uq_marks_history_sequence'),
    )

    op.create_table(
        'grading_policies',
        sa.Column('id', sa.BigInteger(), autoincrement=True, primary_key=True),
        sa.Column('curriculum', curriculum, nullable=False, unique=True),
        sa.Column('document', postgresql.JSONB(), nullable=False),
        sa.Column('updated_by', sa.BigInteger(), nullable=True),
        *timestamps(),
    )


def downgrade() -> None:
    """Drop everything created by upgrade."""
    op.drop_table('grading_policies')
    op.drop_table('marks_history')
    op.drop_table('a_level_results')
    op.drop_table('o_level_results')
    op.drop_index('ix_exams_academic_year', table_name='exams')
    op.drop_index('ix_exams_name', table_name='exams')
    op.drop_table('exams')
    op.drop_index('ix_students_subject_combination_id', table_name='students')
    op.drop_index('ix_students_class_id', table_name='students')
    op.drop_index('ix_students_admission_number', table_name='students')
    op.drop_table('students')
    op.drop_table('class_subjects')
    op.drop_table('school_classes')
    op.drop_table('combination_subjects')
    op.drop_index('ix_subject_combinations_code', table_name='subject_combinations')
    op.drop_table('subject_combinations')
    op.drop_index('ix_subjects_code', table_name='subjects')
    op.drop_table('subjects')

    bind = op.get_bind()
    for enum in reversed(ENUMS):
        enum.drop(bind, checkfirst=True)
