"""
后端代码根目录。

定位：
- 曲库的领域逻辑（元数据、入库流程、检索）、外部工具调用（MuseScore/Audiveris）与 HTTP API 都放在 backend/src 下。
- 前端只负责展示与交互（预览、播放），不直接读写曲库目录。
"""
