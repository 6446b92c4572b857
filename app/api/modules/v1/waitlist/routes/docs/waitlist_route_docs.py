signup_responses = {
    201: {
        "description": "Added to the waitlist",
        "content": {
            "application/json": {
                "examples": {
                    "new_signup": {
                        "summary": "New signup",
                        "value": {
                            "success": True,
                            "status_code": 201,
                            "message": "Welcome to the HealthScan waitlist! "
                            "Please check your email to confirm your spot.",
                            "position": 12,
                            "referralCode": "hs_2p0000",
                            "totalWaitlist": 11,
                            "emailSent": True,
                            "emailError": None,
                            "needsConfirmation": True,
                            "emailConfirmed": False,
                            "alreadyExists": False,
                            "data": {
                                "email": "ada@example.org",
                                "name": "ada",
                                "position": 12,
                                "signupDate": "2025-01-01T10:00:00Z",
                                "confirmed": False,
                                "emailsSent": 1,
                            },
                        },
                    }
                }
            }
        },
    },
    200: {
        "description": "Already on the waitlist",
        "content": {
            "application/json": {
                "examples": {
                    "repeat_signup": {
                        "summary": "Repeat signup",
                        "value": {
                            "success": True,
                            "status_code": 200,
                            "message": "Welcome back! You're already on the waitlist.",
                            "position": 12,
                            "referralCode": "hs_2p0000",
                            "totalWaitlist": 40,
                            "emailSent": False,
                            "needsConfirmation": True,
                            "emailConfirmed": False,
                            "alreadyExists": True,
                            "data": {"email": "ada@example.org", "position": 12},
                        },
                    }
                }
            }
        },
    },
    400: {
        "description": "Invalid email",
        "content": {
            "application/json": {
                "examples": {
                    "invalid_email": {
                        "summary": "Invalid email",
                        "value": {
                            "success": False,
                            "status_code": 400,
                            "message": "Please provide a valid email address",
                            "errorType": "VALIDATION_ERROR",
                            "errors": {"email": ["Please provide a valid email address"]},
                        },
                    }
                }
            }
        },
    },
    429: {
        "description": "Too many signups from this IP",
        "content": {
            "application/json": {
                "examples": {
                    "rate_limited": {
                        "summary": "Rate limited",
                        "value": {
                            "success": False,
                            "status_code": 429,
                            "message": "Too many signup attempts. Please try again later.",
                            "errorType": "RATE_LIMIT_EXCEEDED",
                            "errors": {},
                            "retryAfterSeconds": 3412,
                        },
                    }
                }
            }
        },
    },
    500: {
        "description": "Signup could not be saved",
        "content": {
            "application/json": {
                "examples": {
                    "persistence_error": {
                        "summary": "Persistence failure",
                        "value": {
                            "success": False,
                            "status_code": 500,
                            "message": "Failed to save your information. Please try again.",
                            "errorType": "PERSISTENCE_ERROR",
                            "errors": {},
                        },
                    }
                }
            }
        },
    },
}

confirm_email_responses = {
    200: {
        "description": "Email confirmed (or already confirmed)",
        "content": {
            "application/json": {
                "examples": {
                    "confirmed": {
                        "summary": "Confirmed",
                        "value": {
                            "success": True,
                            "status_code": 200,
                            "message": "Email confirmed successfully!",
                            "confirmed": True,
                            "position": 12,
                            "referralCode": "hs_2p0000",
                            "confirmedAt": "2025-01-01T11:00:00Z",
                            "data": {"email": "ada@example.org", "confirmed": True},
                        },
                    },
                    "already_confirmed": {
                        "summary": "Already confirmed",
                        "value": {
                            "success": True,
                            "status_code": 200,
                            "message": "Email already confirmed",
                            "alreadyConfirmed": True,
                            "position": 12,
                            "referralCode": "hs_2p0000",
                            "data": {"email": "ada@example.org", "confirmed": True},
                        },
                    },
                }
            }
        },
    },
    400: {
        "description": "Missing, expired or malformed token",
        "content": {
            "application/json": {
                "examples": {
                    "expired": {
                        "summary": "Expired token",
                        "value": {
                            "success": False,
                            "status_code": 400,
                            "message": "Invalid or expired confirmation token",
                            "errorType": "TOKEN_VALIDATION_ERROR",
                            "errors": {},
                            "details": "EXPIRED",
                        },
                    },
                    "missing": {
                        "summary": "Missing token",
                        "value": {
                            "success": False,
                            "status_code": 400,
                            "message": "Confirmation token is required",
                            "errorType": "MISSING_TOKEN",
                            "errors": {},
                        },
                    },
                }
            }
        },
    },
    404: {"description": "Email not found in waitlist"},
    503: {"description": "Email confirmation service not available"},
}

stats_responses = {
    200: {
        "description": "Waitlist statistics",
        "content": {
            "application/json": {
                "example": {
                    "success": True,
                    "status_code": 200,
                    "message": "Waitlist statistics retrieved",
                    "stats": {
                        "totalUsers": 120,
                        "confirmedUsers": 84,
                        "recentSignups": 9,
                        "conversionRate": 70,
                        "lastUpdated": "2025-01-01T12:00:00Z",
                    },
                    "data": {},
                }
            }
        },
    },
}

user_status_responses = {
    400: {"description": "Email parameter missing or invalid"},
    404: {
        "description": "Email not on the waitlist",
        "content": {
            "application/json": {
                "example": {
                    "success": False,
                    "status_code": 404,
                    "message": "User not found",
                    "errorType": "USER_NOT_FOUND",
                    "errors": {},
                    "exists": False,
                }
            }
        },
    },
}

referral_stats_responses = {
    404: {
        "description": "Referral code not found",
        "content": {
            "application/json": {
                "example": {
                    "success": False,
                    "status_code": 404,
                    "message": "Referral code not found",
                    "errorType": "REFERRAL_NOT_FOUND",
                    "errors": {},
                }
            }
        },
    },
}
