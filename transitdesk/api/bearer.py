from fastapi.security import HTTPBearer

# Missing credentials are reported by the token validator as InvalidToken (401)
bearer_user = HTTPBearer(scheme_name="User HTTPBearer", auto_error=False)
