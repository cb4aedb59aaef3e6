from __future__ import annotations
from flask import Blueprint, request, abort
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import or_, cast, String, update
from fieldops import get_db
from fieldops.decorators.auth import require_permissions
from fieldops.decorators.audit import audit_log
from fieldops.models.base import iso
from fieldops.models.knowledge import KnowledgeArticle
from fieldops.utils.listing import list_response
from fieldops.utils.sorting import apply_multi_sort
from fieldops.utils.validation import get_or_404, require_fields, require_text, parse_string_list, parse_text

knowledge_bp = Blueprint('knowledge', __name__)

EDITABLE = ('title', 'summary', 'content', 'tags', 'image_url')


def _prefetch_article(article_id):
    a = get_db().get(KnowledgeArticle, article_id) if article_id is not None else None
    return _article_json(a) if a else None


@knowledge_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('KB.READ')
def list_articles():
    session = get_db()
    q = session.query(KnowledgeArticle)
    term = (request.args.get('q') or '').strip()
    if term:
        pattern = f'%{term}%'
        # tags is a JSON list; its text form is enough for substring search
        q = q.filter(or_(KnowledgeArticle.title.ilike(pattern), KnowledgeArticle.summary.ilike(pattern), cast(KnowledgeArticle.tags, String).ilike(pattern)))
    tag = (request.args.get('tag') or '').strip()
    if tag:
        q = q.filter(cast(KnowledgeArticle.tags, String).ilike(f'%"{tag}"%'))
    allowed = {'title': KnowledgeArticle.title, 'view_count': KnowledgeArticle.view_count, 'updated_at': KnowledgeArticle.updated_at, 'id': KnowledgeArticle.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, KnowledgeArticle.id, default=KnowledgeArticle.updated_at.desc())
    return list_response(q, _article_summary_json)


@knowledge_bp.post('')
@require_permissions('KB.MANAGE')
@audit_log('KB.CREATE', entity='KnowledgeArticle', entity_id_key='id', meta_keys=['title', 'tags'])
def create_article():
    session = get_db()
    data = request.json or {}
    require_fields(data, 'title', 'summary', 'content')
    text = require_text(data, 'title', 'summary')
    a = KnowledgeArticle(
        title=text['title'],
        summary=text['summary'],
        content=parse_text(data['content'], 'content'),
        tags=parse_string_list(data.get('tags'), 'tags'),
        image_url=data.get('image_url'),
        author_id=int(get_jwt_identity()),
    )
    session.add(a)
    session.commit()
    return _article_json(a), 201


@knowledge_bp.get('/<int:article_id>')
@require_permissions('KB.READ')
def get_article(article_id: int):
    """Reading an article counts as a view, so this endpoint is not cacheable."""
    session = get_db()
    a = get_or_404(session, KnowledgeArticle, article_id)
    # Relative increment; passing updated_at through keeps a view from counting as an edit
    session.execute(
        update(KnowledgeArticle)
        .where(KnowledgeArticle.id == a.id)
        .values(view_count=KnowledgeArticle.view_count + 1, updated_at=KnowledgeArticle.updated_at)
        .execution_options(synchronize_session='fetch')
    )
    session.commit()
    return _article_json(a)


@knowledge_bp.patch('/<int:article_id>')
@require_permissions('KB.MANAGE')
@audit_log('KB.UPDATE', entity='KnowledgeArticle', entity_id_key='id', diff_keys=['title', 'summary', 'tags'], pre_fetch=lambda a, kw: _prefetch_article(kw.get('article_id')))
def update_article(article_id: int):
    session = get_db()
    a = get_or_404(session, KnowledgeArticle, article_id)
    data = request.json or {}
    for key in EDITABLE:
        if key in data:
            if key == 'tags':
                value = parse_string_list(data[key], 'tags')
            else:
                value = parse_text(data[key], key, required=key != 'image_url')
            setattr(a, key, value)
    session.commit()
    return _article_json(a)


def _article_summary_json(a: KnowledgeArticle):
    return {
        'id': a.id,
        'title': a.title,
        'summary': a.summary,
        'tags': list(a.tags or []),
        'author_id': a.author_id,
        'image_url': a.image_url,
        'view_count': a.view_count,
        'created_at': iso(a.created_at),
        'updated_at': iso(a.updated_at),
    }


def _article_json(a: KnowledgeArticle):
    body = _article_summary_json(a)
    body['content'] = a.content
    return body
