from taskrelay.search.sql_search import SqlTaskSearch, TaskSearch, tokenize_query

__all__ = ["SqlTaskSearch", "TaskSearch", "tokenize_query"]
