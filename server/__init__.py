"""HTTP 服务层：任务处理器与 FastAPI 接口"""
