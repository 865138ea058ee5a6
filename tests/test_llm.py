import pytest
from wbsmaster import llm
from wbsmaster.models import db


class ScriptedClient:
    """Returns canned replies in order and records the prompts it saw."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    def generate(self, prompt, system_prompt=None):
        self.prompts.append((prompt, system_prompt))
        return self.replies.pop(0)


def test_strip_code_fences_and_extract():
    assert llm.strip_code_fences('```sql\nSELECT 1\n```') == 'SELECT 1'
    assert llm.strip_code_fences('```\nSELECT 1```') == 'SELECT 1'
    assert llm.extract_sql('NO_SQL') is None
    assert llm.extract_sql('') is None
    assert llm.extract_sql('```sql\nSELECT * FROM issue\n```') == 'SELECT * FROM issue'

@pytest.mark.parametrize('sql', [
    'SELECT * FROM issue',
    'select count(*) from wbs_item where status = \'COMPLETED\';',
    'WITH late AS (SELECT * FROM issue WHERE is_delayed = 1) SELECT count(*) FROM late',
])
def test_validate_sql_accepts_reads(sql):
    assert not llm.validate_sql(sql).endswith(';')

@pytest.mark.parametrize('sql, reason', [
    ('DELETE FROM issue', 'only SELECT'),
    ('SELECT * FROM issue; DROP TABLE issue', 'DROP'),
    ('SELECT * FROM issue; SELECT 1', 'multiple statements'),
    ('SELECT password_hash FROM user', 'password_hash'),
    ('SELECT * FROM ai_setting', 'ai_setting'),
    ('SELECT * INTO backup FROM issue', 'SELECT INTO'),
    ('WITH x AS (DELETE FROM issue RETURNING *) SELECT * FROM x', 'DELETE'),
    ('SELECT * FROM pg_user', 'PG_'),
])
def test_validate_sql_rejects(sql, reason):
    with pytest.raises(llm.SqlValidationError) as exc:
        llm.validate_sql(sql)
    assert reason in str(exc.value)

def test_parse_chart():
    content, kind, data = llm.parse_chart(
        'Most issues are bugs.\n[CHART:bar3d]\n[CHART_DATA:{"labels":["BUG","FEATURE"],"values":[3,1]}]')
    assert content == 'Most issues are bugs.'
    assert kind == 'bar3d'
    assert data == [{'name': 'BUG', 'value': 3}, {'name': 'FEATURE', 'value': 1}]
    assert llm.parse_chart('No chart here') == ('No chart here', None, None)
    assert llm.parse_chart('[CHART:line_chart] [CHART_DATA:{broken}]')[1:] == ('line', None)
    assert llm.normalize_chart_type('radar') is None

def test_schema_description_hides_secrets():
    text = llm.schema_description(project_id=3)
    assert '- issue(' in text
    assert 'password_hash' not in text
    assert 'ai_setting' not in text
    assert 'project_id = 3' in text

def test_process_message_runs_query():
    client = ScriptedClient('```sql\nSELECT status, count(*) FROM issue GROUP BY status;\n```',
                            'Two open issues. [CHART:pie][CHART_DATA:{"labels":["OPEN"],"values":[2]}]')
    seen = []
    def executor(sql):
        seen.append(sql)
        return [{'status': 'OPEN', 'count': 2}]
    result = llm.process_message(client, 'How many issues per status?', executor=executor)
    assert seen == ['SELECT status, count(*) FROM issue GROUP BY status']
    assert result == {'content': 'Two open issues.', 'sql': seen[0], 'chart_type': 'pie',
                      'chart_data': [{'name': 'OPEN', 'value': 2}]}
    assert '"count": 2' in client.prompts[1][0]
    assert client.prompts[0][1] == llm.DEFAULT_SQL_SYSTEM_PROMPT

def test_process_message_without_sql_uses_custom_prompts():
    client = ScriptedClient('NO_SQL', 'Hello!')
    result = llm.process_message(client, 'hi', sql_system_prompt='SQL rules', analysis_system_prompt='Be brief',
                                 executor=lambda sql: pytest.fail('no query expected'))
    assert result['content'] == 'Hello!'
    assert result['sql'] is None
    assert [p[1] for p in client.prompts] == ['SQL rules', 'Be brief']

def test_process_message_reports_rejected_sql():
    client = ScriptedClient('DELETE FROM issue')
    result = llm.process_message(client, 'wipe it', executor=lambda sql: pytest.fail('must not run'))
    assert result['content'].startswith('SQL validation failed')
    assert len(client.prompts) == 1

def test_process_message_reports_execution_errors():
    def executor(sql):
        raise RuntimeError('no such table: nope')
    result = llm.process_message(ScriptedClient('SELECT * FROM nope'), 'q', executor=executor)
    assert 'no such table' in result['content']

def test_run_readonly(app, auth_client, project_id):
    with app.app_context():
        rows = llm.run_readonly('SELECT name FROM project')
        assert rows == [{'name': 'Apollo'}]
        with pytest.raises(Exception):
            llm.run_readonly('INSERT INTO project (name, status, progress, owner_id, created_at, updated_at) '
                             "VALUES ('x', 'PLANNING', 0, 1, '2024-01-01', '2024-01-01')")
        db.session.remove()
        assert [r['name'] for r in llm.run_readonly('SELECT name FROM project')] == ['Apollo']
