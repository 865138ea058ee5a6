"""Natural-language data assistant.

The pipeline asks the model for a SQL query, validates it, runs it read-only,
then asks the model to explain the rows. Chart hints embedded in the answer as
``[CHART:type]`` / ``[CHART_DATA:{...}]`` are lifted out into structured data.
"""
import json
import logging
import re
from openai import OpenAI, OpenAIError
from wbsmaster.models import db

logger = logging.getLogger(__name__)

MAX_RESULT_ROWS = 100
CHART_TYPES = ('bar', 'bar3d', 'line', 'pie', 'area')
HIDDEN_TABLES = ('ai_setting', 'alembic_version')
HIDDEN_COLUMNS = ('password_hash', 'api_key')

DEFAULT_SQL_SYSTEM_PROMPT = """You are the data assistant of WBS Master, a project management tool.
Translate the user's question into one SQLite-compatible SELECT query.

Rules:
1. Only SELECT (or WITH ... SELECT) statements. Never modify data.
2. Use the exact table and column names from the schema.
3. Use table aliases in joins.
4. Limit results to at most 100 rows (LIMIT 100).
5. Dates are stored as ISO strings (YYYY-MM-DD).

Return only the SQL, without explanation or markdown fences.
If the question needs no data, return NO_SQL.
"""

DEFAULT_ANALYSIS_SYSTEM_PROMPT = """You are the data assistant of WBS Master, a project management tool.
Explain query results to the user in friendly markdown.

Rules:
1. Start with the key insight.
2. Use tables or lists for data.
3. When a chart helps, end the answer with [CHART:bar], [CHART:bar3d], [CHART:line], [CHART:pie] or [CHART:area]
   followed by [CHART_DATA:{"labels":["A","B"],"values":[10,20]}].

Chart choice: bar/bar3d to compare categories, line for trends over time,
pie for proportions, area for cumulative trends.

WBS Master background: WBS items form a four-level hierarchy (major, middle,
minor category, unit task); parent progress is the weighted average of its
children; an item is delayed when its end date has passed and it is not completed.
"""

DANGEROUS_PATTERNS = [
    (re.compile(r'\bINSERT\b'), 'INSERT'),
    (re.compile(r'\bUPDATE\b'), 'UPDATE'),
    (re.compile(r'\bDELETE\b'), 'DELETE'),
    (re.compile(r'\bDROP\b'), 'DROP'),
    (re.compile(r'\bTRUNCATE\b'), 'TRUNCATE'),
    (re.compile(r'\bALTER\b'), 'ALTER'),
    (re.compile(r'\bCREATE\b'), 'CREATE'),
    (re.compile(r'\bREPLACE\s+INTO\b'), 'REPLACE'),
    (re.compile(r'\bGRANT\b'), 'GRANT'),
    (re.compile(r'\bREVOKE\b'), 'REVOKE'),
    (re.compile(r'\bEXEC(UTE)?\b'), 'EXEC'),
    (re.compile(r'\bCOPY\b'), 'COPY'),
    (re.compile(r'\bATTACH\b'), 'ATTACH'),
    (re.compile(r'\bPRAGMA\b'), 'PRAGMA'),
    (re.compile(r'\bPG_'), 'PG_'),
    (re.compile(r'\\\\'), '\\\\'),
] + [(re.compile(rf'\b{name.upper()}\b'), name) for name in HIDDEN_TABLES + HIDDEN_COLUMNS]

CHART_TAG_RE = re.compile(r'\[CHART:([a-z_\-0-9]+)\]', re.I)
CHART_DATA_RE = re.compile(r'\[CHART_DATA:(\{[\s\S]*?\})\]')


class SqlValidationError(ValueError):
    pass


class LlmClient:
    """Thin wrapper over the OpenAI chat completions API."""

    def __init__(self, api_key, model, base_url=None):
        self.model = model
        self.client = OpenAI(api_key=api_key, base_url=base_url or None)

    def generate(self, prompt, system_prompt=None):
        messages = []
        if system_prompt:
            messages.append({'role': 'system', 'content': system_prompt})
        messages.append({'role': 'user', 'content': prompt})
        try:
            resp = self.client.chat.completions.create(model=self.model, messages=messages, temperature=0.2)
        except OpenAIError as exc:
            raise RuntimeError(f'LLM call failed: {exc}') from exc
        return resp.choices[0].message.content or ''


def schema_description(project_id=None):
    lines = ['## Database schema']
    for table in db.metadata.sorted_tables:
        if table.name in HIDDEN_TABLES:
            continue
        cols = ', '.join(f'{c.name} {c.type}' for c in table.columns if c.name not in HIDDEN_COLUMNS)
        lines.append(f'- {table.name}({cols})')
    if project_id:
        lines.append('')
        lines.append(f'## Project filter\nRestrict project-scoped tables to project_id = {int(project_id)}.')
    return '\n'.join(lines)

def strip_code_fences(text):
    sql = (text or '').strip()
    if sql.startswith('```sql'):
        sql = sql[6:]
    elif sql.startswith('```'):
        sql = sql[3:]
    if sql.endswith('```'):
        sql = sql[:-3]
    return sql.strip()

def extract_sql(response):
    """SQL from a model reply, or None when the model answered NO_SQL."""
    text = (response or '').strip()
    if not text or 'no_sql' in text.lower():
        return None
    return strip_code_fences(text)

def validate_sql(sql):
    """Raise SqlValidationError unless ``sql`` is a single read-only query."""
    upper = sql.upper().strip()
    if not (upper.startswith('SELECT') or upper.startswith('WITH')):
        raise SqlValidationError('only SELECT statements are allowed')
    if upper.startswith('WITH') and not re.search(r'\bSELECT\b', upper):
        raise SqlValidationError('WITH clause has no SELECT')
    for pattern, name in DANGEROUS_PATTERNS:
        if pattern.search(upper):
            raise SqlValidationError(f'forbidden keyword: {name}')
    into = re.search(r'\bINTO\b', upper)
    from_ = re.search(r'\bFROM\b', upper)
    if into and (from_ is None or into.start() < from_.start()):
        raise SqlValidationError('SELECT INTO is not allowed')
    body = sql.strip().rstrip(';')
    if ';' in body:
        raise SqlValidationError('multiple statements are not allowed')
    return body

def run_readonly(sql, limit=MAX_RESULT_ROWS):
    """Execute a validated query in a transaction that is always rolled back."""
    with db.engine.connect() as conn:
        dialect = conn.dialect.name
        if dialect == 'sqlite':
            conn.exec_driver_sql('PRAGMA query_only = ON')
        elif dialect == 'postgresql':
            conn.exec_driver_sql('SET TRANSACTION READ ONLY')
        try:
            result = conn.exec_driver_sql(sql)
            rows = [dict(r._mapping) for r in result.fetchmany(limit)]
        finally:
            conn.rollback()
            if dialect == 'sqlite':
                conn.exec_driver_sql('PRAGMA query_only = OFF')
                conn.commit()
    return rows

def normalize_chart_type(raw):
    kind = re.sub(r'[-_]', '', (raw or '').lower())
    if kind in ('bar3d', 'bar3') or '3d' in kind:
        return 'bar3d'
    for name in ('bar', 'line', 'pie', 'area'):
        if kind.startswith(name):
            return name
    return None

def parse_chart(response):
    """Split a model answer into ``(content, chart_type, chart_data)``."""
    chart_type = None
    chart_data = None
    m = CHART_TAG_RE.search(response)
    if m:
        chart_type = normalize_chart_type(m.group(1))
    m = CHART_DATA_RE.search(response)
    if m:
        try:
            parsed = json.loads(m.group(1))
        except ValueError:
            logger.warning('unparseable chart data in LLM answer')
            parsed = None
        if isinstance(parsed, dict) and 'labels' in parsed and 'values' in parsed:
            values = parsed['values']
            chart_data = [{'name': label, 'value': values[i] if i < len(values) else None}
                          for i, label in enumerate(parsed['labels'])]
        elif isinstance(parsed, list):
            chart_data = parsed
    content = CHART_DATA_RE.sub('', CHART_TAG_RE.sub('', response)).strip()
    return content, chart_type, chart_data


def _analysis_prompt(message, sql, rows):
    if sql is None:
        return (f'User question: {message}\n\nThis question needs no database lookup. '
                'Answer it helpfully; WBS Master is a project management tool.')
    payload = json.dumps(rows, ensure_ascii=False, indent=2, default=str)
    return (f'## User question\n{message}\n\n## Executed SQL\n```sql\n{sql}\n```\n\n'
            f'## Query result (JSON)\n```json\n{payload}\n```\n\n'
            'Explain the result to the user and suggest a chart if it helps.')

def process_message(client, message, project_id=None, sql_system_prompt=None,
                    analysis_system_prompt=None, executor=run_readonly):
    """Run the whole pipeline; returns ``{content, sql, chart_type, chart_data}``.

    Validation and execution failures come back as assistant content.
    """
    prompt = (f'{schema_description(project_id)}\n\n## User question\n{message}\n\n'
              'Write the SQL query for this question.')
    sql = extract_sql(client.generate(prompt, sql_system_prompt or DEFAULT_SQL_SYSTEM_PROMPT))
    rows = None
    if sql:
        try:
            sql = validate_sql(sql)
        except SqlValidationError as exc:
            logger.info('rejected generated SQL: %s', exc)
            return {'content': f'SQL validation failed: {exc}\n\nThe generated query violates the security policy.',
                    'sql': sql, 'chart_type': None, 'chart_data': None}
        try:
            rows = executor(sql)
        except Exception as exc:
            logger.info('generated SQL failed: %s', exc)
            return {'content': f'SQL execution error: {exc}\n\nPlease rephrase the question.',
                    'sql': sql, 'chart_type': None, 'chart_data': None}
    answer = client.generate(_analysis_prompt(message, sql, rows),
                             analysis_system_prompt or DEFAULT_ANALYSIS_SYSTEM_PROMPT)
    content, chart_type, chart_data = parse_chart(answer)
    return {'content': content, 'sql': sql, 'chart_type': chart_type, 'chart_data': chart_data}
