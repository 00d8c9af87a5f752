"""Session-agnostic paging for service listings"""


def paginate(query, page=1, per_page=20):
    """Slice an ordered query; same keys as Flask-SQLAlchemy's Pagination"""
    page = max(int(page or 1), 1)
    per_page = max(int(per_page or 20), 1)
    total = query.count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        'items': items,
        'total': total,
        'page': page,
        'per_page': per_page,
        'pages': (total + per_page - 1) // per_page,
    }
