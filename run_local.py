import uvicorn
import os

# In-memory Firestore and canned content unless told otherwise
os.environ.setdefault("USE_MOCK_DB", "1")
os.environ.setdefault("USE_MOCK_LLM", "1")

if __name__ == "__main__":
    # Reload=True allows you to see changes immediately
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
