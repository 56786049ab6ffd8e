"""In-memory stand-ins for the Motor database and GridFS bucket used in tests."""

import copy
from datetime import timedelta
from types import SimpleNamespace

from bson import ObjectId
from gridfs.errors import NoFile
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from examdesk.utils import utcnow

_MISSING = object()


# ============ QUERY MATCHING ============

def _equals(actual, expected):
    if actual is _MISSING:
        return expected is None
    if isinstance(actual, list) and not isinstance(expected, list):
        return expected in actual
    return actual == expected


def _compare(actual, op, arg):
    if actual is _MISSING or actual is None:
        return False
    if op == "$gt":
        return actual > arg
    if op == "$gte":
        return actual >= arg
    if op == "$lt":
        return actual < arg
    if op == "$lte":
        return actual <= arg
    raise NotImplementedError(op)


def _match_operator(actual, op, arg):
    if op == "$ne":
        return not _equals(actual, arg)
    if op == "$in":
        return any(_equals(actual, item) for item in arg)
    if op == "$type":
        if arg != "string":
            raise NotImplementedError(f"$type {arg}")
        return isinstance(actual, str)
    return _compare(actual, op, arg)


def _is_operator_dict(value):
    return isinstance(value, dict) and value and all(k.startswith("$") for k in value)


def matches(doc, query):
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
        elif key == "$and":
            if not all(matches(doc, sub) for sub in condition):
                return False
        elif _is_operator_dict(condition):
            actual = doc.get(key, _MISSING)
            if not all(_match_operator(actual, op, arg) for op, arg in condition.items()):
                return False
        elif not _equals(doc.get(key, _MISSING), condition):
            return False
    return True


def project(doc, projection):
    doc = copy.deepcopy(doc)
    if not projection:
        return doc
    included = [k for k, v in projection.items() if v and k != "_id"]
    if included:
        out = {k: doc[k] for k in included if k in doc}
        if projection.get("_id", 1) and "_id" in doc:
            out["_id"] = doc["_id"]
        return out
    return {k: v for k, v in doc.items() if projection.get(k, 1)}


def apply_update(doc, update, inserting=False):
    for op, fields in update.items():
        if op == "$set":
            for key, value in fields.items():
                doc[key] = copy.deepcopy(value)
        elif op == "$setOnInsert":
            if inserting:
                for key, value in fields.items():
                    doc[key] = copy.deepcopy(value)
        elif op == "$inc":
            for key, value in fields.items():
                doc[key] = doc.get(key, 0) + value
        elif op == "$addToSet":
            for key, value in fields.items():
                items = doc.setdefault(key, [])
                if value not in items:
                    items.append(value)
        elif op == "$unset":
            for key in fields:
                doc.pop(key, None)
        else:
            raise NotImplementedError(op)


# ============ CURSOR / COLLECTION / DATABASE ============

class FakeCursor:
    def __init__(self, docs):
        self._docs = docs
        self._limit = None

    def sort(self, key, direction=1):
        present = [d for d in self._docs if d.get(key) is not None]
        absent = [d for d in self._docs if d.get(key) is None]
        present.sort(key=lambda d: d[key], reverse=direction == -1)
        self._docs = present + absent
        return self

    def limit(self, count):
        self._limit = count
        return self

    async def to_list(self, length=None):
        docs = self._docs
        if self._limit:
            docs = docs[:self._limit]
        if length:
            docs = docs[:length]
        return list(docs)


class FakeCollection:
    """Enough of AsyncIOMotorCollection for the service layer."""

    def __init__(self, name):
        self.name = name
        self.docs = []
        self.unique_indexes = []

    # -- indexes --

    async def create_index(self, keys, unique=False, partialFilterExpression=None, **kwargs):
        if isinstance(keys, str):
            fields = [keys]
        else:
            fields = [k for k, _ in keys]
        if unique:
            self.unique_indexes.append((fields, partialFilterExpression))
        return "_".join(fields)

    def _check_unique(self, candidate, ignore=None):
        for fields, partial in self.unique_indexes:
            if partial and not matches(candidate, partial):
                continue
            key = tuple(candidate.get(f) for f in fields)
            for doc in self.docs:
                if doc is ignore or (partial and not matches(doc, partial)):
                    continue
                if tuple(doc.get(f) for f in fields) == key:
                    raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name} {fields}")

    # -- writes --

    async def insert_one(self, document):
        doc = copy.deepcopy(document)
        doc.setdefault("_id", ObjectId())
        self._check_unique(doc)
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    def _upsert(self, query, update):
        doc = {k: copy.deepcopy(v) for k, v in query.items()
               if not k.startswith("$") and not _is_operator_dict(v)}
        apply_update(doc, update, inserting=True)
        doc.setdefault("_id", ObjectId())
        self._check_unique(doc)
        self.docs.append(doc)
        return doc

    def _find_first(self, query):
        for doc in self.docs:
            if matches(doc, query):
                return doc
        return None

    async def update_one(self, query, update, upsert=False):
        doc = self._find_first(query)
        if doc is None:
            if upsert:
                created = self._upsert(query, update)
                return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=created["_id"])
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

        before = copy.deepcopy(doc)
        apply_update(doc, update)
        return SimpleNamespace(matched_count=1, modified_count=int(before != doc), upserted_id=None)

    async def find_one_and_update(self, query, update, projection=None,
                                  return_document=ReturnDocument.BEFORE, upsert=False):
        doc = self._find_first(query)
        if doc is None:
            if not upsert:
                return None
            created = self._upsert(query, update)
            return project(created, projection) if return_document == ReturnDocument.AFTER else None

        before = copy.deepcopy(doc)
        apply_update(doc, update)
        return project(doc if return_document == ReturnDocument.AFTER else before, projection)

    async def delete_one(self, query):
        doc = self._find_first(query)
        if doc is None:
            return SimpleNamespace(deleted_count=0)
        self.docs.remove(doc)
        return SimpleNamespace(deleted_count=1)

    async def delete_many(self, query):
        keep = [d for d in self.docs if not matches(d, query)]
        deleted = len(self.docs) - len(keep)
        self.docs = keep
        return SimpleNamespace(deleted_count=deleted)

    # -- reads --

    async def find_one(self, query, projection=None):
        doc = self._find_first(query)
        return project(doc, projection) if doc is not None else None

    def find(self, query=None, projection=None):
        return FakeCursor([project(d, projection) for d in self.docs if matches(d, query or {})])

    async def count_documents(self, query):
        return sum(1 for d in self.docs if matches(d, query))


class FakeDB:
    def __init__(self):
        self._collections = {}

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

    def __getitem__(self, name):
        if name not in self._collections:
            self._collections[name] = FakeCollection(name)
        return self._collections[name]

    def seed(self, collection, *documents):
        """Insert documents synchronously, bypassing index checks."""
        for document in documents:
            self[collection].docs.append(copy.deepcopy(document))


# ============ GRIDFS ============

class FakeGridOut:
    def __init__(self, entry):
        self.filename = entry["filename"]
        self.metadata = entry["metadata"]
        self._data = entry["data"]

    async def read(self):
        return self._data


class FakeBucket:
    """AsyncIOMotorGridFSBucket stand-in; ``fail_after`` makes later uploads fail."""

    def __init__(self, fail_after=None):
        self.files = {}
        self.fail_after = fail_after
        self.upload_calls = 0

    async def upload_from_stream(self, filename, source, metadata=None):
        self.upload_calls += 1
        if self.fail_after is not None and self.upload_calls > self.fail_after:
            raise ConnectionError("GridFS unavailable")
        file_id = ObjectId()
        self.files[file_id] = {"filename": filename, "data": bytes(source), "metadata": metadata}
        return file_id

    async def open_download_stream(self, file_id):
        if file_id not in self.files:
            raise NoFile(f"no file {file_id}")
        return FakeGridOut(self.files[file_id])

    async def delete(self, file_id):
        if file_id not in self.files:
            raise NoFile(f"no file {file_id}")
        del self.files[file_id]


# ============ DOCUMENT BUILDERS ============

def mcq(qid, correct=(0,), score=2, options=("A", "B", "C")):
    return {
        "id": qid,
        "type": "mcq",
        "text": f"Question {qid}",
        "options": list(options),
        "correct_options": list(correct),
        "score": score,
    }


def essay(qid, score=5):
    return {"id": qid, "type": "essay", "text": f"Explain {qid}", "score": score}


def exam_doc(exam_id="exam_1", questions=None, **overrides):
    doc = {
        "exam_id": exam_id,
        "teacher_id": "teacher_1",
        "title": "Algebra quiz",
        "course_id": None,
        "grade": "10",
        "is_paid": False,
        "price": 0,
        "questions": questions or [mcq("q1"), mcq("q2", correct=(0, 2))],
        "max_attempts": 1,
        "expires_at": None,
        "created_at": utcnow(),
    }
    doc.update(overrides)
    return doc


def profile_doc(user_id="student_1", role="student", **overrides):
    doc = {
        "user_id": user_id,
        "role": role,
        "full_name": user_id.replace("_", " ").title(),
        "grade": "10" if role == "student" else None,
        "wallet_balance": 0,
        "purchased_exams": [],
        "enrolled_courses": [],
        "created_at": utcnow(),
    }
    doc.update(overrides)
    return doc


def course_doc(course_id="course_1", **overrides):
    doc = {
        "course_id": course_id,
        "title": "Physics term 1",
        "description": "",
        "grade": "10",
        "price": 40,
        "teacher_id": "teacher_1",
        "created_at": utcnow(),
    }
    doc.update(overrides)
    return doc


def submission_doc(submission_id, exam_id="exam_1", student_id="student_1",
                   total_score=0, minutes_ago=0, **overrides):
    doc = {
        "submission_id": submission_id,
        "exam_id": exam_id,
        "student_id": student_id,
        "answers": [],
        "total_score": total_score,
        "status": "graded",
        "attempt_number": 1,
        "submitted_at": utcnow() - timedelta(minutes=minutes_ago),
    }
    doc.update(overrides)
    return doc


def session_doc(token, user_id, hours=24):
    return {
        "session_token": token,
        "user_id": user_id,
        "expires_at": utcnow() + timedelta(hours=hours),
    }
