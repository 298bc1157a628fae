import csv
import io
import os
import re
import pandas as pd

EXCEL_EXTENSIONS = ('.xls', '.xlsx')
ALLOWED_IMPORT_EXTENSIONS = ('.csv', '.txt') + EXCEL_EXTENSIONS


def normalize_header(raw):
    """Lowercase, turn separators into spaces and drop punctuation so header spellings compare equal"""
    text = (raw or '').replace('\ufeff', '').strip().lower()
    text = re.sub(r'[_-]+', ' ', text)
    text = re.sub(r'[^a-z0-9 ]', ' ', text)
    return re.sub(r'\s+', ' ', text).strip()


def guess_delimiter(header_line):
    # Some locales export ';'
    return ';' if header_line.count(';') > header_line.count(',') else ','


def split_lines(text):
    lines = [line.rstrip() for line in (text or '').replace('\ufeff', '', 1).splitlines()]
    return [line for line in lines if line.strip()]


def parse_csv_line(line, delimiter):
    row = next(csv.reader([line], delimiter=delimiter, skipinitialspace=True), [])
    return [cell.strip() for cell in row]


def header_index(headers, candidates):
    """Position of the first candidate present in the normalised headers, or -1"""
    for candidate in candidates:
        key = normalize_header(candidate)
        if key in headers:
            return headers.index(key)
    return -1


def value_at(cols, idx):
    if idx < 0 or idx >= len(cols):
        return ''
    return (cols[idx] or '').strip()


def read_upload_text(file_storage):
    """
    Return the text of an uploaded CSV, converting Excel sheets to CSV text first.

    Raises:
        ValueError: If the file extension is not supported or the file cannot be decoded
    """
    filename = file_storage.filename or ''
    file_ext = os.path.splitext(filename)[1].lower()
    if file_ext not in ALLOWED_IMPORT_EXTENSIONS:
        raise ValueError('Invalid file format. Please upload a CSV or Excel file')

    raw = file_storage.read()
    if file_ext in EXCEL_EXTENSIONS:
        df = pd.read_excel(io.BytesIO(raw), header=None, dtype=str).fillna('')
        return df.to_csv(index=False, header=False)

    for encoding in ('utf-8-sig', 'latin-1'):
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise ValueError('Failed to read file.')
