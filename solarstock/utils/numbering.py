import uuid
from datetime import datetime


def generate_document_no(prefix):
    """Document number: PREFIX-YYYYMMDD-XXXX"""
    date_str = datetime.now().strftime('%Y%m%d')
    random_str = uuid.uuid4().hex[:4].upper()
    return f"{prefix}-{date_str}-{random_str}"
