"""Exam portal API endpoints.

Paths are relative to Settings.PORTAL_BASE_URL. The dashboard path keeps the
portal's own spelling.
"""

DASHBOARD = "/api/studentdashbaord/getStudentTestStatus"

START_TEST = "/api/testsubmission/startTest"
QUESTION_REFS = "/api/testsubmission/getTestQuestionSubmissions"
QUESTION = "/api/testsubmission/setQuestionStatusUnanswered"
RESTORATION_STATE = "/api/testsubmission/getTestQuestionsWithSubmissions"
SUBMIT_ANSWERS = "/api/testsubmission/submitTest"
FINAL_RESULT = "/api/testsubmission/submitFinalResult"

# Default request headers; the client adds the token header
DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}

TOKEN_HEADER = "token"
