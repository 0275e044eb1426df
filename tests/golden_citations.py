# tests/golden_citations.py
# Answers as a model writes them, with the outcome expected for each citation

GOLDEN_CITATIONS = [
    {
        "answer": "Value {{citation:data.xlsx|Sheet: Summary, Row 4|258}}",
        "expected": [
            {"status": "found", "document": "data.xlsx", "sheet": "Summary", "row_number": 4},
        ],
    },
    {
        "answer": "The duplicate upload says so {{citation:invoice (2).pdf|Page 1|total due}}.",
        "expected": [
            {"status": "found", "document": "invoice.pdf", "page": 1},
        ],
    },
    {
        "answer": "<think>reasoning here</think>Answer {{citation:notes.txt|Para 1|hello}}",
        "expected": [
            {"status": "found", "document": "notes.txt", "label": "Para 1"},
        ],
    },
    {
        "answer": "See the site {{citation:https://example.com/doc|Section 2|anything}}.",
        "expected": [
            {"status": "url", "document": None},
        ],
    },
    {
        "answer": (
            "The survey {{citation:survey|Page 3|net floor area}} and the budget "
            "【citation:notes.txt||approved on Monday】 agree; "
            "the memo {{citation:memo.docx|Page 2|missing}} does not exist."
        ),
        "expected": [
            {"status": "found", "document": "survey.pdf", "page": 3},
            {"status": "found", "document": "notes.txt", "label": "Excerpt"},
            {"status": "not_found", "document": None},
        ],
    },
]
